# motorbid/crud.py
"""Persistence helpers for profiles, vehicles, auctions, bids and verifications.

Reads return ORM objects (or raise `NotFound`). Writes run inside
`transaction()`, which commits on success, rolls back on any failure and
translates driver errors into the shared error taxonomy.

Bid placement and auction transitions are serialized per auction: a
process-local lock keyed by auction id plus a `SELECT ... FOR UPDATE` on the
auction row, so the read-max/validate/insert sequence can't interleave with
another writer on the same auction. SQLite ignores FOR UPDATE; there the
process lock is what serializes writers.
"""
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from . import lifecycle
from .bidding import validate_bid
from .errors import ConstraintViolation, DuplicateVerification, NotFound, UpstreamUnavailable
from .models import (
    Auction, Bid, Favorite, Profile, Transaction, Vehicle, VehicleImage, WorldIDVerification,
)
from .utils import logger, utcnow

# an entry lives only while a caller references its lock
_auction_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_auction_locks_guard = threading.Lock()


def auction_lock(auction_id: str) -> threading.Lock:
    with _auction_locks_guard:
        lock = _auction_locks.get(auction_id)
        if lock is None:
            lock = _auction_locks[auction_id] = threading.Lock()
        return lock


@contextmanager
def transaction(db: Session):
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info("Integrity error: %s", e.orig)
        raise ConstraintViolation("write conflicts with existing data") from e
    except OperationalError as e:
        db.rollback()
        logger.exception("Database unavailable: %s", e)
        raise UpstreamUnavailable("database", str(e.orig)) from e
    except Exception:
        db.rollback()
        raise


def _insert_ignore(db: Session, model, values: Dict[str, Any], index_elements: List[str]):
    """INSERT that silently does nothing when the unique key already exists."""
    table = model.__table__
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    else:
        exists = db.execute(
            select(func.count()).select_from(table).where(
                and_(*[table.c[k] == values[k] for k in index_elements]))
        ).scalar()
        if exists:
            return 0
        stmt = insert(table).values(**values)
    return db.execute(stmt).rowcount


# ---- profiles ----

def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.get(Profile, user_id)

def ensure_profile(db: Session, user_id: str, email: str = None, full_name: str = None,
                   avatar_url: str = None) -> Profile:
    """Get-or-create the profile for an authenticated user."""
    profile = db.get(Profile, user_id)
    if profile is not None:
        return profile
    values = {
        "id": user_id,
        "username": email.split("@")[0] if email else None,
        "full_name": full_name,
        "avatar_url": avatar_url,
        "is_seller": False,
        "is_verified": False,
        "world_id_verified": False,
    }
    with transaction(db):
        created = _insert_ignore(db, Profile, values, ["id"])
    if created:
        logger.info("Created profile %s", user_id)
    return db.get(Profile, user_id)

def update_profile(db: Session, user_id: str, updates: Dict[str, Any]) -> Profile:
    profile = db.get(Profile, user_id)
    if not profile:
        raise NotFound("profile", user_id)
    with transaction(db):
        for k, v in updates.items():
            setattr(profile, k, v)
    db.refresh(profile)
    return profile


# ---- vehicles ----

def get_vehicle(db: Session, vehicle_id: str) -> Vehicle:
    vehicle = db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id).options(selectinload(Vehicle.images))
    ).scalar_one_or_none()
    if vehicle is None:
        raise NotFound("vehicle", vehicle_id)
    return vehicle

def list_vehicles(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None):
    q = select(Vehicle)
    if filters:
        conds = []
        if filters.get("make"):
            conds.append(Vehicle.make.ilike(f"%{filters['make']}%"))
        if filters.get("model"):
            conds.append(Vehicle.model.ilike(f"%{filters['model']}%"))
        if filters.get("min_year") is not None:
            conds.append(Vehicle.year >= filters["min_year"])
        if filters.get("max_year") is not None:
            conds.append(Vehicle.year <= filters["max_year"])
        if filters.get("max_mileage") is not None:
            conds.append(Vehicle.mileage <= filters["max_mileage"])
        if conds:
            q = q.where(and_(*conds))
    total = db.execute(select(func.count()).select_from(q.subquery())).scalar()
    items = db.execute(
        q.options(selectinload(Vehicle.images))
        .order_by(Vehicle.created_at.desc())
        .offset(skip).limit(limit)
    ).scalars().all()
    return {"total": total, "items": items}

def create_listing(db: Session, seller_id: str, vehicle_data: Dict[str, Any],
                   images: List[Dict[str, Any]], auction_data: Dict[str, Any]) -> Tuple[Vehicle, Auction]:
    """Insert a vehicle, its images and its auction as one unit.

    Either all rows are committed or none are.
    """
    with transaction(db):
        vehicle = Vehicle(seller_id=seller_id, **vehicle_data)
        vehicle.images = [VehicleImage(**img) for img in images]
        db.add(vehicle)
        db.flush()
        auction = Auction(vehicle_id=vehicle.id, **auction_data)
        db.add(auction)
        db.flush()
        profile = db.get(Profile, seller_id)
        if profile is not None and not profile.is_seller:
            profile.is_seller = True
    logger.info("Created listing vehicle=%s auction=%s seller=%s", vehicle.id, auction.id, seller_id)
    return vehicle, auction


# ---- auctions ----

def _auction_with_counts():
    return (
        select(Auction, func.count(Bid.id))
        .outerjoin(Bid, Bid.auction_id == Auction.id)
        .group_by(Auction.id)
        .options(selectinload(Auction.vehicle).selectinload(Vehicle.images))
    )

def list_active_auctions(db: Session) -> List[Tuple[Auction, int]]:
    rows = db.execute(
        _auction_with_counts().where(Auction.status == "active").order_by(Auction.end_date.asc())
    ).all()
    return [(a, n) for a, n in rows]

def get_auction(db: Session, auction_id: str) -> Auction:
    auction = db.execute(
        select(Auction).where(Auction.id == auction_id).options(
            selectinload(Auction.vehicle).selectinload(Vehicle.images),
            selectinload(Auction.bids).selectinload(Bid.bidder),
        )
    ).scalar_one_or_none()
    if auction is None:
        raise NotFound("auction", auction_id)
    return auction

def _lock_auction(db: Session, auction_id: str) -> Auction:
    auction = db.execute(
        select(Auction).where(Auction.id == auction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if auction is None:
        raise NotFound("auction", auction_id)
    return auction

def _bids_for(db: Session, auction_id: str) -> List[Bid]:
    return db.execute(select(Bid).where(Bid.auction_id == auction_id)).scalars().all()

def place_bid(db: Session, auction_id: str, bidder_id: str, amount, now: datetime = None) -> Bid:
    now = now or utcnow()
    with auction_lock(auction_id):
        with transaction(db):
            auction = _lock_auction(db, auction_id)
            amount = validate_bid(auction, _bids_for(db, auction_id), amount, now=now)
            bid = Bid(auction_id=auction_id, bidder_id=bidder_id, amount=amount, created_at=now)
            db.add(bid)
    logger.info("Bid %s placed on auction %s by %s", amount, auction_id, bidder_id)
    return bid

def _apply(db: Session, auction: Auction, transition: lifecycle.Transition):
    if not transition.changed:
        return
    previous = auction.status
    auction.status = transition.status
    auction.winner_id = transition.winner_id
    auction.final_price = transition.final_price
    if transition.status == "ended" and transition.winner_id is not None:
        seller_id = db.execute(select(Vehicle.seller_id).where(Vehicle.id == auction.vehicle_id)).scalar_one()
        db.add(Transaction(
            auction_id=auction.id,
            buyer_id=transition.winner_id,
            seller_id=seller_id,
            amount=transition.final_price,
        ))
    logger.info("Auction %s %s -> %s winner=%s price=%s", auction.id, previous,
                transition.status, transition.winner_id, transition.final_price)

def _transition(db: Session, auction_id: str, project):
    with auction_lock(auction_id):
        with transaction(db):
            auction = _lock_auction(db, auction_id)
            result = project(auction, _bids_for(db, auction_id))
            _apply(db, auction, result)
    return auction, result

def advance_auction(db: Session, auction_id: str, now: datetime = None):
    now = now or utcnow()
    return _transition(db, auction_id, lambda a, bids: lifecycle.advance(a, bids, now))

def close_auction(db: Session, auction_id: str, now: datetime = None):
    now = now or utcnow()
    return _transition(db, auction_id, lambda a, bids: lifecycle.close(a, bids, now))

def cancel_auction(db: Session, auction_id: str, force: bool = False):
    return _transition(db, auction_id, lambda a, bids: lifecycle.cancel(a, bids, force=force))

def due_auction_ids(db: Session, now: datetime) -> List[str]:
    return db.execute(
        select(Auction.id).where(or_(
            and_(Auction.status == "pending", Auction.start_date <= now),
            and_(Auction.status == "active", Auction.end_date <= now),
        ))
    ).scalars().all()

def get_transaction(db: Session, auction_id: str) -> Optional[Transaction]:
    return db.execute(select(Transaction).where(Transaction.auction_id == auction_id)).scalar_one_or_none()


# ---- user views ----

def get_user_active_bids(db: Session, user_id: str) -> List[Bid]:
    return db.execute(
        select(Bid).join(Auction, Bid.auction_id == Auction.id)
        .where(Bid.bidder_id == user_id, Auction.status == "active")
        .order_by(Bid.created_at.desc())
        .options(selectinload(Bid.auction).selectinload(Auction.vehicle).selectinload(Vehicle.images))
    ).scalars().all()

def get_user_won_auctions(db: Session, user_id: str) -> List[Tuple[Auction, int]]:
    rows = db.execute(
        _auction_with_counts()
        .where(Auction.winner_id == user_id, Auction.status == "ended")
        .order_by(Auction.end_date.desc())
    ).all()
    return [(a, n) for a, n in rows]


# ---- favorites ----

def add_favorite(db: Session, user_id: str, auction_id: str):
    if db.get(Auction, auction_id) is None:
        raise NotFound("auction", auction_id)
    with transaction(db):
        _insert_ignore(db, Favorite, {"user_id": user_id, "auction_id": auction_id}, ["user_id", "auction_id"])

def remove_favorite(db: Session, user_id: str, auction_id: str) -> bool:
    with transaction(db):
        res = db.execute(delete(Favorite).where(Favorite.user_id == user_id, Favorite.auction_id == auction_id))
    return res.rowcount > 0

def list_favorites(db: Session, user_id: str) -> List[Tuple[Auction, int]]:
    rows = db.execute(
        _auction_with_counts()
        .join(Favorite, Favorite.auction_id == Auction.id)
        .where(Favorite.user_id == user_id)
        .group_by(Favorite.id)
        .order_by(Favorite.created_at.desc())
    ).all()
    return [(a, n) for a, n in rows]


# ---- identity verification ----

def record_verification(db: Session, nullifier_hash: str, verification_level: str = None,
                        action: str = None, user_id: str = None) -> WorldIDVerification:
    """Record a verified nullifier. Re-recording the same nullifier is a no-op.

    With `user_id` the nullifier is bound to that user (first binding wins) and
    the profile is flagged verified. A nullifier already bound to a different
    user raises `DuplicateVerification`.
    """
    with transaction(db):
        inserted = _insert_ignore(db, WorldIDVerification, {
            "nullifier_hash": nullifier_hash,
            "verification_level": verification_level,
            "action": action,
            "user_id": user_id,
        }, ["nullifier_hash"])
        if user_id is not None and not inserted:
            db.execute(
                update(WorldIDVerification)
                .where(WorldIDVerification.nullifier_hash == nullifier_hash,
                       WorldIDVerification.user_id.is_(None))
                .values(user_id=user_id)
            )
        record = db.execute(
            select(WorldIDVerification)
            .where(WorldIDVerification.nullifier_hash == nullifier_hash)
            .execution_options(populate_existing=True)
        ).scalar_one()
        if user_id is not None:
            if record.user_id != user_id:
                raise DuplicateVerification()
            profile = db.get(Profile, user_id)
            if profile is None:
                raise NotFound("profile", user_id)
            profile.world_id_verified = True
            profile.is_verified = True
    if inserted:
        logger.info("Recorded verification %s (user=%s)", nullifier_hash, user_id)
    else:
        logger.info("Verification %s already recorded", nullifier_hash)
    return record

def is_nullifier_recorded(db: Session, nullifier_hash: str) -> bool:
    return db.execute(
        select(WorldIDVerification.id).where(WorldIDVerification.nullifier_hash == nullifier_hash)
    ).first() is not None
