# tests/test_bidding.py
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0
from motorbid.bidding import highest_bid, minimum_bid, validate_bid
from motorbid.errors import AuctionNotActive, BidTooLow, ConstraintViolation, ValidationError
from motorbid.models import Auction, Bid


def auction(status="active", start_price="10000", increment="100", reserve=None):
    return Auction(
        id="A",
        status=status,
        start_price=Decimal(start_price),
        min_bid_increment=Decimal(increment),
        reserve_price=Decimal(reserve) if reserve else None,
        start_date=T0,
        end_date=T0 + timedelta(days=7),
    )


def bid(amount, bidder="alice", minutes=0):
    return Bid(auction_id="A", bidder_id=bidder, amount=Decimal(amount), created_at=T0 + timedelta(minutes=minutes))


@pytest.mark.parametrize("start_price", ["1", "500", "10000", "249999.99"])
def test_first_bid_at_start_price_accepted(start_price):
    a = auction(start_price=start_price)
    assert validate_bid(a, [], start_price) == Decimal(start_price)
    with pytest.raises(BidTooLow) as exc:
        validate_bid(a, [], Decimal(start_price) - Decimal("0.01"))
    assert exc.value.floor == Decimal(start_price)


def test_floor_is_highest_plus_increment():
    a = auction()
    bids = [bid("10000"), bid("10400", "bob", 5), bid("10200", "carol", 10)]
    assert minimum_bid(a, bids) == Decimal("10500")
    assert validate_bid(a, bids, "10500") == Decimal("10500")
    with pytest.raises(BidTooLow) as exc:
        validate_bid(a, bids, "10499.99")
    assert exc.value.floor == Decimal("10500")
    assert exc.value.to_dict()["minimum_bid"] == "10500"


@pytest.mark.parametrize("status", ["pending", "ended", "cancelled"])
def test_bid_on_closed_auction_always_rejected(status):
    a = auction(status=status)
    for amount in ("1", "10000", "999999999"):
        with pytest.raises(ConstraintViolation):
            validate_bid(a, [], amount)


def test_active_auction_past_end_rejects_bids():
    a = auction()
    with pytest.raises(AuctionNotActive):
        validate_bid(a, [], "20000", now=T0 + timedelta(days=7))
    assert validate_bid(a, [], "20000", now=T0 + timedelta(days=6)) == Decimal("20000")


@pytest.mark.parametrize("amount", [0, -5, "-0.01", "nan", "inf", "-inf", "abc", None, True])
def test_rejects_non_positive_or_non_finite_amounts(amount):
    with pytest.raises(ValidationError) as exc:
        validate_bid(auction(), [], amount)
    assert "amount" in exc.value.errors


@pytest.mark.parametrize("amount,message", [
    ("10000.999", "decimal places"),
    ("10000.001", "decimal places"),
    ("10000000000", "less than"),
    ("123456789012345678901.37", "less than"),
])
def test_rejects_amounts_that_do_not_fit_a_money_column(amount, message):
    with pytest.raises(ValidationError) as exc:
        validate_bid(auction(), [], amount)
    assert message in exc.value.errors["amount"]


def test_accepts_cents_and_trailing_zeros():
    assert validate_bid(auction(), [], "10000.50") == Decimal("10000.50")
    assert validate_bid(auction(), [], "10000.500") == Decimal("10000.5")
    assert validate_bid(auction(), [], "9999999999.99") == Decimal("9999999999.99")


def test_bidding_scenario():
    a = auction(start_price="10000", increment="100")
    placed = []

    placed.append(bid(validate_bid(a, placed, 10000), "alice", 1))
    with pytest.raises(BidTooLow) as exc:
        validate_bid(a, placed, 10050)
    assert exc.value.floor == Decimal("10100")

    placed.append(bid(validate_bid(a, placed, 10100), "bob", 2))
    with pytest.raises(BidTooLow):
        validate_bid(a, placed, 10100)


def test_highest_bid_prefers_earliest_on_tie():
    first = bid("12000", "alice", 1)
    second = bid("12000", "bob", 2)
    assert highest_bid([second, first]) is first
    assert highest_bid([]) is None
