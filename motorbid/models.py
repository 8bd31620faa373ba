# motorbid/models.py
"""SQLAlchemy ORM models for persisted entities.

Profiles, vehicles with their images, auctions and their append-only bids,
plus the settlement, favorite and identity-verification records.
"""
import uuid

from sqlalchemy import (
    Boolean, Column, ForeignKey, Index, Integer, JSON, Numeric, Text,
    TIMESTAMP, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base
from .utils import utcnow

AUCTION_STATUSES = ("pending", "active", "ended", "cancelled")
TERMINAL_STATUSES = ("ended", "cancelled")
TRANSACTION_STATUSES = ("pending", "paid", "completed", "refunded", "cancelled")

Money = Numeric(12, 2)


def _uuid():
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Text, primary_key=True)
    username = Column(Text)
    full_name = Column(Text)
    avatar_url = Column(Text)
    phone_number = Column(Text)
    address = Column(Text)
    is_seller = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    world_id_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)


class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(Text, primary_key=True, default=_uuid)
    seller_id = Column(Text, ForeignKey("profiles.id"), nullable=False, index=True)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    year = Column(Integer, nullable=False)
    mileage = Column(Integer, nullable=False)
    engine = Column(Text)
    transmission = Column(Text)
    exterior_color = Column(Text)
    interior_color = Column(Text)
    vin = Column(Text)
    description = Column(Text)
    condition = Column(Text)
    features = Column(JSON)
    documents = Column(JSON)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    images = relationship("VehicleImage", back_populates="vehicle", cascade="all, delete-orphan")
    auction = relationship("Auction", back_populates="vehicle", uselist=False)


class VehicleImage(Base):
    __tablename__ = "vehicle_images"
    id = Column(Text, primary_key=True, default=_uuid)
    vehicle_id = Column(Text, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    vehicle = relationship("Vehicle", back_populates="images")


class Auction(Base):
    __tablename__ = "auctions"
    id = Column(Text, primary_key=True, default=_uuid)
    vehicle_id = Column(Text, ForeignKey("vehicles.id"), nullable=False, unique=True)
    start_price = Column(Money, nullable=False)
    reserve_price = Column(Money)
    min_bid_increment = Column(Money, nullable=False)
    start_date = Column(TIMESTAMP(timezone=True), nullable=False)
    end_date = Column(TIMESTAMP(timezone=True), nullable=False)
    status = Column(Text, nullable=False, default="pending")
    winner_id = Column(Text, ForeignKey("profiles.id"))
    final_price = Column(Money)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    vehicle = relationship("Vehicle", back_populates="auction")
    bids = relationship("Bid", back_populates="auction", order_by="Bid.created_at")

    def __repr__(self):
        return f"Auction(id={self.id!r}, status={self.status!r}, end_date={self.end_date!r})"


class Bid(Base):
    __tablename__ = "bids"
    id = Column(Text, primary_key=True, default=_uuid)
    auction_id = Column(Text, ForeignKey("auctions.id"), nullable=False)
    bidder_id = Column(Text, ForeignKey("profiles.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    auction = relationship("Auction", back_populates="bids")
    bidder = relationship("Profile")

    def __repr__(self):
        return f"Bid(id={self.id!r}, auction_id={self.auction_id!r}, bidder_id={self.bidder_id!r}, amount={self.amount!r})"


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Text, primary_key=True, default=_uuid)
    auction_id = Column(Text, ForeignKey("auctions.id"), nullable=False, unique=True)
    buyer_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    seller_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    amount = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    payment_method = Column(Text)
    payment_id = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)


class Favorite(Base):
    __tablename__ = "favorites"
    id = Column(Text, primary_key=True, default=_uuid)
    user_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    auction_id = Column(Text, ForeignKey("auctions.id"), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    auction = relationship("Auction")

    __table_args__ = (UniqueConstraint("user_id", "auction_id", name="uq_favorite_user_auction"),)


class WorldIDVerification(Base):
    __tablename__ = "world_id_verifications"
    id = Column(Text, primary_key=True, default=_uuid)
    nullifier_hash = Column(Text, nullable=False, unique=True)
    user_id = Column(Text, ForeignKey("profiles.id"))
    verification_level = Column(Text)
    action = Column(Text)
    verified_at = Column(TIMESTAMP(timezone=True), default=utcnow)

Index("idx_auctions_status_end", Auction.status, Auction.end_date)
Index("idx_bids_auction_amount", Bid.auction_id, Bid.amount)
