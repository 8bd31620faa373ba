# motorbid/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_AUCTION_DAYS, DEFAULT_MIN_BID_INCREMENT


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---- listings ----

class ImageIn(BaseModel):
    url: str = Field(..., max_length=2048)
    is_primary: bool = False

class VehicleDraft(BaseModel):
    make: str
    model: str
    year: int
    mileage: int
    engine: Optional[str] = None
    transmission: Optional[str] = None
    exterior_color: Optional[str] = None
    interior_color: Optional[str] = None
    vin: Optional[str] = None
    description: str = ""
    condition: Optional[str] = None
    features: Optional[dict] = None
    documents: Optional[dict] = None

class AuctionDraft(BaseModel):
    start_price: Decimal
    reserve_price: Optional[Decimal] = None
    min_bid_increment: Decimal = Decimal(DEFAULT_MIN_BID_INCREMENT)
    duration_days: int = DEFAULT_AUCTION_DAYS
    start_date: Optional[datetime] = None

class ListingCreate(BaseModel):
    vehicle: VehicleDraft
    auction: AuctionDraft
    images: List[ImageIn] = []


class ImageOut(ORMModel):
    id: str
    url: str
    is_primary: bool

class VehicleOut(ORMModel):
    id: str
    seller_id: str
    make: str
    model: str
    year: int
    mileage: int
    engine: Optional[str] = None
    transmission: Optional[str] = None
    exterior_color: Optional[str] = None
    interior_color: Optional[str] = None
    vin: Optional[str] = None
    description: Optional[str] = None
    condition: Optional[str] = None
    features: Optional[dict] = None
    documents: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    images: List[ImageOut] = []

class AuctionOut(ORMModel):
    id: str
    vehicle_id: str
    start_price: Decimal
    reserve_price: Optional[Decimal] = None
    min_bid_increment: Decimal
    start_date: datetime
    end_date: datetime
    status: str
    winner_id: Optional[str] = None
    final_price: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AuctionSummary(AuctionOut):
    vehicle: Optional[VehicleOut] = None
    bid_count: int = 0

class ListingOut(BaseModel):
    vehicle: VehicleOut
    auction: AuctionOut


# ---- profiles ----

class ProfileOut(ORMModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    is_seller: bool
    is_verified: bool
    world_id_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None


# ---- bids ----

class BidCreate(BaseModel):
    amount: Decimal

class BidOut(ORMModel):
    id: str
    auction_id: str
    bidder_id: str
    amount: Decimal
    created_at: Optional[datetime] = None

class BidWithBidder(BidOut):
    bidder: Optional[ProfileOut] = None

class AuctionDetail(AuctionSummary):
    bids: List[BidWithBidder] = []
    minimum_bid: Optional[Decimal] = None

class BidWithAuction(BidOut):
    auction: AuctionSummary

class ProfilePage(BaseModel):
    profile: ProfileOut
    active_bids: List[BidWithAuction] = []
    won_auctions: List[AuctionSummary] = []


# ---- auth & verification ----

class SessionCreate(BaseModel):
    access_token: str

class ProofBundle(BaseModel):
    merkle_root: str
    nullifier_hash: str
    proof: str
    verification_level: str
    action: str
    signal_hash: Optional[str] = None


# ---- inventory passthrough ----

class Car(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    make: str = Field(..., alias="marca", min_length=1)
    model: str = Field(..., alias="modelo", min_length=1)
    year: int = Field(..., alias="año")
    start_price: float = Field(..., alias="precioInicial", gt=0)
    owner_wallet: str = Field(..., alias="ownerWallet", min_length=1)
    image: Optional[str] = Field(None, alias="imagen")

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v):
        return None if v is None else str(v)

    @field_validator("year")
    @classmethod
    def _year_in_range(cls, v):
        if v < 1900 or v > datetime.now().year + 1:
            raise ValueError("year out of range")
        return v

    @field_validator("image")
    @classmethod
    def _image_is_url(cls, v):
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("image must be an http(s) URL")
        return v
