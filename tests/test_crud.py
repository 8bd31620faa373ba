# tests/test_crud.py
import gc
import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from conftest import T0, later, listing_draft
from motorbid import crud, services
from motorbid.db import Base, SessionLocal, make_engine
from motorbid.errors import (
    AuctionNotActive, BidTooLow, ConstraintViolation, DuplicateVerification, NotFound, ValidationError,
)
from motorbid.models import Auction, Bid, Profile, Transaction, Vehicle, VehicleImage, WorldIDVerification
from motorbid.scheduler import sweep_auctions


def count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar()


def test_create_listing_and_get(db, make_listing):
    vehicle, auction = make_listing()
    obj = crud.get_vehicle(db, vehicle.id)
    assert obj.make == "Toyota"
    assert [img.is_primary for img in obj.images] == [True]
    assert auction.status == "active"
    assert auction.end_date.replace(tzinfo=None) == later(days=7).replace(tzinfo=None)
    assert db.get(Profile, "seller-1").is_seller is True


def test_create_listing_is_atomic(db):
    crud.ensure_profile(db, "seller-1")
    vehicle_data = listing_draft().vehicle.model_dump()
    bad_auction = {"start_price": Decimal("1000"), "min_bid_increment": Decimal("100"),
                   "start_date": T0, "end_date": None, "status": "active"}
    with pytest.raises(ConstraintViolation):
        crud.create_listing(db, "seller-1", vehicle_data, [{"url": "https://x/1.jpg", "is_primary": True}], bad_auction)
    assert count(db, Vehicle) == 0
    assert count(db, VehicleImage) == 0
    assert count(db, Auction) == 0


def test_place_bid_scenario(db, make_listing, bidders):
    _, auction = make_listing(start_price="10000", increment="100")
    crud.place_bid(db, auction.id, "alice", 10000, now=later(hours=1))
    with pytest.raises(BidTooLow) as exc:
        crud.place_bid(db, auction.id, "bob", 10050, now=later(hours=2))
    assert exc.value.floor == Decimal("10100")
    crud.place_bid(db, auction.id, "bob", 10100, now=later(hours=3))
    with pytest.raises(BidTooLow):
        crud.place_bid(db, auction.id, "carol", 10100, now=later(hours=4))

    amounts = sorted(b.amount for b in crud.get_auction(db, auction.id).bids)
    assert amounts == [Decimal("10000"), Decimal("10100")]


def test_place_bid_missing_auction(db, bidders):
    with pytest.raises(NotFound):
        crud.place_bid(db, "nope", "alice", 100)


def test_place_bid_stores_exactly_what_was_accepted(db, make_listing, bidders):
    _, auction = make_listing()
    with pytest.raises(ValidationError):
        crud.place_bid(db, auction.id, "alice", "10000.999", now=later(hours=1))
    with pytest.raises(ValidationError):
        crud.place_bid(db, auction.id, "alice", "123456789012345678901.37", now=later(hours=1))
    assert count(db, Bid) == 0
    bid = crud.place_bid(db, auction.id, "alice", "10000.25", now=later(hours=1))
    db.expire_all()
    assert db.get(Bid, bid.id).amount == Decimal("10000.25")


def test_lock_registry_does_not_grow(db, make_listing, bidders):
    _, auction = make_listing()
    gc.collect()
    before = len(crud._auction_locks)
    for i in range(200):
        with pytest.raises(NotFound):
            crud.place_bid(db, f"nope-{i}", "alice", 100)
    crud.place_bid(db, auction.id, "alice", 10000, now=later(hours=1))
    crud.advance_auction(db, auction.id, now=later(days=8))
    gc.collect()
    assert len(crud._auction_locks) == before


def test_place_bid_after_end_rejected(db, make_listing, bidders):
    _, auction = make_listing(days=1)
    with pytest.raises(AuctionNotActive):
        crud.place_bid(db, auction.id, "alice", 20000, now=later(days=2))


def test_concurrent_equal_bids_only_one_accepted(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    seed = Session()
    for uid in ("seller-1", "alice", "bob"):
        crud.ensure_profile(seed, uid)
    _, auction = services.create_listing(seed, "seller-1", listing_draft(), now=T0)
    auction_id = auction.id
    seed.close()

    barrier = threading.Barrier(2)
    outcomes = []

    def bidder(uid):
        session = Session()
        try:
            barrier.wait()
            crud.place_bid(session, auction_id, uid, 10000, now=later(hours=1))
            outcomes.append("ok")
        except BidTooLow:
            outcomes.append("too_low")
        finally:
            session.close()

    threads = [threading.Thread(target=bidder, args=(uid,)) for uid in ("alice", "bob")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "too_low"]
    check = Session()
    assert len(crud.get_auction(check, auction_id).bids) == 1
    check.close()
    engine.dispose()


def test_advance_auction_records_winner_once(db, make_listing, bidders):
    _, auction = make_listing(reserve_price="10500")
    crud.place_bid(db, auction.id, "alice", 10000, now=later(hours=1))
    crud.place_bid(db, auction.id, "bob", 11000, now=later(hours=2))

    _, t = crud.advance_auction(db, auction.id, now=later(days=1))
    assert t.changed is False

    for _ in range(2):
        a, _ = crud.advance_auction(db, auction.id, now=later(days=8))
        assert (a.status, a.winner_id, a.final_price) == ("ended", "bob", Decimal("11000"))

    tx = crud.get_transaction(db, auction.id)
    assert (tx.buyer_id, tx.seller_id, tx.amount, tx.status) == ("bob", "seller-1", Decimal("11000"), "pending")
    assert count(db, Transaction) == 1
    assert [(w.id, n) for w, n in crud.get_user_won_auctions(db, "bob")] == [(auction.id, 2)]


def test_cancel_auction_with_bids_needs_force(db, make_listing, bidders):
    _, auction = make_listing()
    crud.place_bid(db, auction.id, "alice", 10000, now=later(hours=1))
    with pytest.raises(ConstraintViolation):
        crud.cancel_auction(db, auction.id)
    a, _ = crud.cancel_auction(db, auction.id, force=True)
    assert a.status == "cancelled"


def test_sweep_advances_due_auctions(db, make_listing, bidders):
    _, opening = make_listing(seller="s1", start_date=later(hours=1))
    _, closing = make_listing(seller="s2", days=1)
    _, running = make_listing(seller="s3", days=30)
    assert opening.status == "pending"
    crud.place_bid(db, closing.id, "alice", 10000, now=later(hours=1))

    assert sweep_auctions(now=later(days=2), session_factory=SessionLocal) == 2
    assert sweep_auctions(now=later(days=2), session_factory=SessionLocal) == 0

    db.expire_all()
    assert db.get(Auction, opening.id).status == "active"
    assert db.get(Auction, closing.id).winner_id == "alice"
    assert db.get(Auction, running.id).status == "active"


def test_ensure_profile_is_idempotent(db):
    p = crud.ensure_profile(db, "u1", email="jane.doe@example.com", full_name="Jane Doe")
    again = crud.ensure_profile(db, "u1", email="other@example.com")
    assert p.username == "jane.doe"
    assert again.username == "jane.doe"
    assert count(db, Profile) == 1


def test_record_verification_is_idempotent(db):
    crud.ensure_profile(db, "u1")
    crud.record_verification(db, "0xnull", "orb", "verify-seller", user_id="u1")
    crud.record_verification(db, "0xnull", "orb", "verify-seller", user_id="u1")
    db.expire_all()
    assert db.get(Profile, "u1").world_id_verified is True
    assert count(db, WorldIDVerification) == 1


def test_record_verification_rejects_reuse_by_other_user(db):
    crud.ensure_profile(db, "u1")
    crud.ensure_profile(db, "u2")
    crud.record_verification(db, "0xnull", "orb", "verify-seller", user_id="u1")
    with pytest.raises(DuplicateVerification):
        crud.record_verification(db, "0xnull", "orb", "verify-seller", user_id="u2")
    db.expire_all()
    assert db.get(Profile, "u2").world_id_verified is False


def test_anonymous_verification_is_bound_later(db):
    crud.ensure_profile(db, "u1")
    crud.record_verification(db, "0xanon", "device", "verify-seller")
    assert crud.is_nullifier_recorded(db, "0xanon")
    record = crud.record_verification(db, "0xanon", user_id="u1")
    assert record.user_id == "u1"
    assert db.get(Profile, "u1").world_id_verified is True


def test_list_vehicles_filters(db, make_listing):
    make_listing(seller="s1", make="Toyota", year=2015, mileage=120000)
    make_listing(seller="s2", make="Honda", model="Civic", year=2021, mileage=15000)
    res = crud.list_vehicles(db, filters={"min_year": 2018})
    assert [v.make for v in res["items"]] == ["Honda"]
    res = crud.list_vehicles(db, filters={"make": "toy"})
    assert res["total"] == 1
    assert crud.list_vehicles(db, filters={"max_mileage": 200000})["total"] == 2


def test_favorites(db, make_listing, bidders):
    _, auction = make_listing()
    crud.add_favorite(db, "alice", auction.id)
    crud.add_favorite(db, "alice", auction.id)
    crud.place_bid(db, auction.id, "bob", 10000, now=later(hours=1))
    assert [(a.id, n) for a, n in crud.list_favorites(db, "alice")] == [(auction.id, 1)]
    assert crud.remove_favorite(db, "alice", auction.id) is True
    assert crud.remove_favorite(db, "alice", auction.id) is False
    with pytest.raises(NotFound):
        crud.add_favorite(db, "alice", "missing")
