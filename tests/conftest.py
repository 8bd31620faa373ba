# tests/conftest.py
import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# configure before anything imports motorbid.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-test-jwt-secret-000"
os.environ["SECRET_KEY"] = "test-session-secret-test-session-secret"
os.environ["ADMIN_USER_IDS"] = "admin-1"
os.environ["WORLDID_APP_ID"] = "app_test"
os.environ["WORLDID_ACTION"] = "verify-seller"
os.environ["SCHEDULER_ENABLED"] = "0"

import pytest
from jose import jwt

from motorbid import crud, schemas, services
from motorbid.db import Base, SessionLocal, engine

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    from fastapi.testclient import TestClient
    from motorbid.main import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_token(sub, email=None, expires_in=3600, **extra):
    claims = {"sub": sub, "aud": "authenticated", "exp": int(time.time()) + expires_in}
    if email:
        claims["email"] = email
    claims.update(extra)
    return jwt.encode(claims, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth_headers(sub, **kw):
    return {"Authorization": f"Bearer {make_token(sub, **kw)}"}


def listing_draft(start_price="10000", reserve_price=None, increment="100", days=7, start_date=None, **vehicle):
    v = {
        "make": "Toyota",
        "model": "Corolla",
        "year": 2020,
        "mileage": 45000,
        "description": "One owner, full service history.",
    }
    v.update(vehicle)
    return schemas.ListingCreate(
        vehicle=v,
        auction={
            "start_price": Decimal(start_price),
            "reserve_price": Decimal(reserve_price) if reserve_price is not None else None,
            "min_bid_increment": Decimal(increment),
            "duration_days": days,
            "start_date": start_date,
        },
        images=[{"url": "https://img.example.com/corolla.jpg"}],
    )


@pytest.fixture()
def make_listing(db):
    def _make(seller="seller-1", now=T0, **kw):
        crud.ensure_profile(db, seller, email=f"{seller}@example.com")
        return services.create_listing(db, seller, listing_draft(**kw), now=now)
    return _make


@pytest.fixture()
def bidders(db):
    ids = ["alice", "bob", "carol"]
    for uid in ids:
        crud.ensure_profile(db, uid, email=f"{uid}@example.com")
    return ids


def later(**kw):
    return T0 + timedelta(**kw)
