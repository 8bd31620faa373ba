# motorbid/services.py
from datetime import date, timedelta
from typing import Dict

from sqlalchemy.orm import Session

from . import crud, schemas
from .bidding import money_problem
from .errors import ValidationError
from .utils import as_utc, logger, utcnow

MIN_YEAR = 1900
MIN_DESCRIPTION_LENGTH = 10
MONEY_FIELDS = (
    ("start_price", "start price"),
    ("reserve_price", "reserve price"),
    ("min_bid_increment", "minimum bid increment"),
)


def validate_listing(draft: schemas.ListingCreate, today: date = None) -> None:
    """Raise a ValidationError listing every field that fails the listing rules."""
    today = today or date.today()
    v, a = draft.vehicle, draft.auction
    errors: Dict[str, str] = {}

    if not v.make.strip():
        errors["make"] = "make is required"
    if not v.model.strip():
        errors["model"] = "model is required"
    if not MIN_YEAR <= v.year <= today.year + 1:
        errors["year"] = f"year must be between {MIN_YEAR} and {today.year + 1}"
    if v.mileage < 0:
        errors["mileage"] = "mileage cannot be negative"
    if len((v.description or "").strip()) < MIN_DESCRIPTION_LENGTH:
        errors["description"] = f"description must be at least {MIN_DESCRIPTION_LENGTH} characters"

    for field, label in MONEY_FIELDS:
        value = getattr(a, field)
        problem = money_problem(value) if value is not None else None
        if problem:
            errors[field] = f"{label} {problem}"
    if not errors.keys() & {"start_price", "reserve_price"} and a.reserve_price is not None \
            and a.reserve_price < a.start_price:
        errors["reserve_price"] = "reserve price cannot be below the start price"
    if a.duration_days < 1:
        errors["duration_days"] = "auction must run for at least one day"

    if sum(1 for img in draft.images if img.is_primary) > 1:
        errors["images"] = "only one image can be primary"

    if errors:
        raise ValidationError(errors)


def create_listing(db: Session, seller_id: str, draft: schemas.ListingCreate, now=None):
    """Validate and persist a vehicle with its images and auction in one transaction."""
    now = as_utc(now) if now else utcnow()
    validate_listing(draft, today=now.date())

    a = draft.auction
    # a past start opens the auction now
    start = max(as_utc(a.start_date), now) if a.start_date else now
    end = start + timedelta(days=a.duration_days)
    status = "active" if start <= now else "pending"

    images = [img.model_dump() for img in draft.images]
    if images and not any(img["is_primary"] for img in images):
        images[0]["is_primary"] = True

    vehicle_data = draft.vehicle.model_dump()
    vehicle_data["make"] = vehicle_data["make"].strip()
    vehicle_data["model"] = vehicle_data["model"].strip()
    auction_data = {
        "start_price": a.start_price,
        "reserve_price": a.reserve_price,
        "min_bid_increment": a.min_bid_increment,
        "start_date": start,
        "end_date": end,
        "status": status,
    }
    vehicle, auction = crud.create_listing(db, seller_id, vehicle_data, images, auction_data)
    logger.info("Listing %s %s %s opens %s (%s)", vehicle.year, vehicle.make, vehicle.model, start, status)
    return vehicle, auction
