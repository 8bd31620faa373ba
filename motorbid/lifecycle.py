# motorbid/lifecycle.py
"""Auction status transitions.

    pending -> active -> ended
        \\          \\-> cancelled
         \\-> ended / cancelled

Every function here is a projection: it reads an auction and its bids and
returns the `Transition` that should be persisted. Terminal auctions always
project to themselves, so running `advance` again (from a retried job or a
second scheduler instance) changes nothing.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .bidding import highest_bid
from .errors import AuctionHasBids, AuctionNotActive
from .models import TERMINAL_STATUSES
from .utils import as_utc


@dataclass(frozen=True)
class Transition:
    status: str
    winner_id: Optional[str] = None
    final_price: Optional[Decimal] = None
    changed: bool = False


def _unchanged(auction) -> Transition:
    return Transition(auction.status, auction.winner_id, auction.final_price, changed=False)


def select_winner(auction, bids):
    """Winning bid at close, or None.

    Highest amount wins, earliest bid breaks ties. If a reserve is set and the
    top bid is below it the auction ends without a sale.
    """
    top = highest_bid(bids)
    if top is None:
        return None
    if auction.reserve_price is not None and Decimal(top.amount) < Decimal(auction.reserve_price):
        return None
    return top


def _end(auction, bids) -> Transition:
    winner = select_winner(auction, bids)
    if winner is None:
        return Transition("ended", None, None, changed=True)
    return Transition("ended", winner.bidder_id, Decimal(winner.amount), changed=True)


def advance(auction, bids, now) -> Transition:
    """Project the time-driven transitions for `auction` at `now`."""
    if auction.status in TERMINAL_STATUSES:
        return _unchanged(auction)
    now = as_utc(now)
    if now >= as_utc(auction.end_date):
        return _end(auction, bids)
    if auction.status == "pending" and now >= as_utc(auction.start_date):
        return Transition("active", changed=True)
    return _unchanged(auction)


def close(auction, bids, now) -> Transition:
    """Administrative close: end an active auction now, picking the winner as usual."""
    if auction.status == "ended":
        return _unchanged(auction)
    if auction.status != "active":
        raise AuctionNotActive(auction.id, auction.status)
    return _end(auction, bids)


def cancel(auction, bids, force=False) -> Transition:
    """Cancel a pending or active auction.

    A seller may only withdraw while nobody has bid; `force` lets an
    administrator cancel regardless.
    """
    if auction.status == "cancelled":
        return _unchanged(auction)
    if auction.status == "ended":
        raise AuctionNotActive(auction.id, auction.status)
    if bids and not force:
        raise AuctionHasBids(auction.id)
    return Transition("cancelled", changed=True)
