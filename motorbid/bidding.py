# motorbid/bidding.py
"""Bid validation.

Pure functions over an auction and the bids already placed on it. Nothing
here touches the database; `crud.place_bid` calls `validate_bid` while
holding the per-auction lock and persists the result.
"""
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from .errors import AuctionNotActive, BidTooLow, ValidationError
from .utils import as_utc


# Money columns are Numeric(12, 2)
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal(10) ** 10


def money_problem(amount: Decimal) -> Optional[str]:
    """Why `amount` can't be stored as a money value, or None when it can."""
    if not amount.is_finite():
        return "must be a finite number"
    if amount <= 0:
        return "must be greater than zero"
    if amount >= MAX_AMOUNT:
        return f"must be less than {MAX_AMOUNT:,}"
    if amount != amount.quantize(CENT):
        return "cannot have more than two decimal places"
    return None


def to_amount(value) -> Decimal:
    """Coerce a user supplied amount to Decimal, rejecting anything that isn't storable money."""
    if isinstance(value, bool):
        raise ValidationError({"amount": "must be a number"})
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError({"amount": "must be a number"})
    problem = money_problem(amount)
    if problem:
        raise ValidationError({"amount": problem})
    return amount


def highest_bid(bids: Iterable):
    """Highest bid, earliest wins a tie. None when there are no bids."""
    best = None
    for bid in bids:
        if best is None or bid.amount > best.amount:
            best = bid
        elif bid.amount == best.amount and as_utc(bid.created_at) < as_utc(best.created_at):
            best = bid
    return best


def minimum_bid(auction, existing_bids) -> Decimal:
    top = highest_bid(existing_bids)
    if top is None:
        return Decimal(auction.start_price)
    return Decimal(top.amount) + Decimal(auction.min_bid_increment)


def validate_bid(auction, existing_bids, proposed_amount, now=None) -> Decimal:
    """Check `proposed_amount` against the auction's current floor.

    Returns the amount as a Decimal when the bid is acceptable. Raises
    `AuctionNotActive` if the auction is not taking bids (status other than
    active, or `now` is past its end), `BidTooLow` carrying the floor when the
    amount is short, or `ValidationError` for a non-positive/non-finite amount.
    """
    if auction.status != "active":
        raise AuctionNotActive(auction.id, auction.status)
    if now is not None and as_utc(now) >= as_utc(auction.end_date):
        raise AuctionNotActive(auction.id, "expired")
    amount = to_amount(proposed_amount)
    floor = minimum_bid(auction, existing_bids)
    if amount < floor:
        raise BidTooLow(floor)
    return amount
