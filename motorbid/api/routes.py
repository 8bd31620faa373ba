# motorbid/api/routes.py
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .. import crud, schemas, services
from ..auth import (
    ACCESS_COOKIE, VERIFIED_SESSION_KEY, decode_access_token, get_claims, is_admin,
    profile_from_claims, require_profile, session_verified,
)
from ..bidding import minimum_bid
from ..config import SECURE_COOKIES, VERIFICATION_MAX_AGE
from ..db import get_db
from ..errors import Forbidden, MarketError, NotFound, Unauthorized
from ..inventory import InventoryClient
from ..models import Profile
from ..utils import logger
from ..verification import WorldIDClient, is_eligible_to_list

router = APIRouter()

VERIFIED_COOKIE = "worldid_verified"


def get_worldid_client() -> WorldIDClient:
    return WorldIDClient()

def get_inventory_client() -> InventoryClient:
    return InventoryClient()


def _summary(auction, bid_count: int) -> schemas.AuctionSummary:
    return schemas.AuctionSummary.model_validate(auction).model_copy(update={"bid_count": bid_count})


@router.get("/health")
def health():
    return {"status": "ok"}


# ---- auth session ----

@router.post("/auth/session", response_model=schemas.ProfileOut)
def create_session(payload: schemas.SessionCreate, response: Response, db: Session = Depends(get_db)):
    claims = decode_access_token(payload.access_token)
    if claims is None:
        raise Unauthorized("Invalid access token.")
    profile = profile_from_claims(db, claims)
    response.set_cookie(ACCESS_COOKIE, payload.access_token, httponly=True, samesite="lax",
                        secure=SECURE_COOKIES, path="/")
    return profile


@router.delete("/auth/session")
def delete_session(request: Request, response: Response):
    response.delete_cookie(ACCESS_COOKIE, path="/")
    request.session.clear()
    return {"status": "signed_out"}


# ---- vehicles ----

@router.get("/vehicles", response_model=List[schemas.VehicleOut])
def vehicles(
    skip: int = 0,
    limit: int = 20,
    make: str | None = Query(None),
    model: str | None = Query(None),
    min_year: int | None = Query(None),
    max_year: int | None = Query(None),
    max_mileage: int | None = Query(None),
    db: Session = Depends(get_db)
):
    filters = {
        "make": make,
        "model": model,
        "min_year": min_year,
        "max_year": max_year,
        "max_mileage": max_mileage,
    }
    res = crud.list_vehicles(db, skip=skip, limit=limit, filters=filters)
    return res["items"]


@router.get("/vehicles/{vehicle_id}", response_model=schemas.VehicleOut)
def get_vehicle(vehicle_id: str, db: Session = Depends(get_db)):
    return crud.get_vehicle(db, vehicle_id)


# ---- auctions ----

@router.get("/auctions", response_model=List[schemas.AuctionSummary])
def active_auctions(db: Session = Depends(get_db)):
    return [_summary(a, n) for a, n in crud.list_active_auctions(db)]


@router.get("/auctions/{auction_id}", response_model=schemas.AuctionDetail)
def auction_detail(auction_id: str, db: Session = Depends(get_db)):
    auction = crud.get_auction(db, auction_id)
    floor = minimum_bid(auction, auction.bids) if auction.status == "active" else None
    return schemas.AuctionDetail.model_validate(auction).model_copy(
        update={"bid_count": len(auction.bids), "minimum_bid": floor})


@router.post("/auctions/{auction_id}/bids", response_model=schemas.BidOut, status_code=201)
def place_bid(auction_id: str, payload: schemas.BidCreate,
              profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    return crud.place_bid(db, auction_id, profile.id, payload.amount)


@router.post("/auctions/{auction_id}/close", response_model=schemas.AuctionOut)
def close_auction(auction_id: str, profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    if not is_admin(profile.id):
        raise Forbidden("Only administrators can close an auction early.")
    auction, _ = crud.close_auction(db, auction_id)
    return auction


@router.post("/auctions/{auction_id}/cancel", response_model=schemas.AuctionOut)
def cancel_auction(auction_id: str, profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    auction = crud.get_auction(db, auction_id)
    admin = is_admin(profile.id)
    if not admin and auction.vehicle.seller_id != profile.id:
        raise Forbidden("Only the seller can withdraw this auction.")
    auction, _ = crud.cancel_auction(db, auction_id, force=admin)
    return auction


@router.post("/auctions/{auction_id}/favorite", status_code=204)
def add_favorite(auction_id: str, profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    crud.add_favorite(db, profile.id, auction_id)


@router.delete("/auctions/{auction_id}/favorite", status_code=204)
def remove_favorite(auction_id: str, profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    crud.remove_favorite(db, profile.id, auction_id)


# ---- listings ----

@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(payload: schemas.ListingCreate, request: Request,
                   profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    verified = profile.world_id_verified
    if not verified and session_verified(request):
        # promote the session marker to a persisted flag on the profile
        crud.record_verification(db, request.session[VERIFIED_SESSION_KEY], user_id=profile.id)
        verified = True
    if not is_eligible_to_list(verified):
        raise Forbidden("Verify your identity with World ID before listing a vehicle.")
    vehicle, auction = services.create_listing(db, profile.id, payload)
    return schemas.ListingOut(
        vehicle=schemas.VehicleOut.model_validate(vehicle),
        auction=schemas.AuctionOut.model_validate(auction),
    )


# ---- identity verification ----

@router.post("/verify-identity")
def verify_identity(bundle: schemas.ProofBundle, request: Request, db: Session = Depends(get_db),
                    client: WorldIDClient = Depends(get_worldid_client)):
    try:
        client.verify(bundle.model_dump())
        claims = get_claims(request)
        user_id = None
        if claims is not None:
            user_id = profile_from_claims(db, claims).id
        crud.record_verification(db, bundle.nullifier_hash, bundle.verification_level,
                                 bundle.action, user_id=user_id)
    except (MarketError, OperationalError):
        raise
    except Exception as e:
        logger.exception("verify-identity failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Internal server error"})

    request.session[VERIFIED_SESSION_KEY] = bundle.nullifier_hash
    resp = JSONResponse({"success": True})
    resp.set_cookie(VERIFIED_COOKIE, "true", httponly=True, max_age=VERIFICATION_MAX_AGE,
                    path="/", samesite="lax", secure=SECURE_COOKIES)
    return resp


# ---- profile ----

@router.get("/profile", response_model=schemas.ProfilePage)
def profile_page(profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    return schemas.ProfilePage(
        profile=schemas.ProfileOut.model_validate(profile),
        active_bids=[schemas.BidWithAuction.model_validate(b) for b in crud.get_user_active_bids(db, profile.id)],
        won_auctions=[_summary(a, n) for a, n in crud.get_user_won_auctions(db, profile.id)],
    )


@router.patch("/profile", response_model=schemas.ProfileOut)
def update_profile(payload: schemas.ProfileUpdate, profile: Profile = Depends(require_profile),
                   db: Session = Depends(get_db)):
    return crud.update_profile(db, profile.id, updates=payload.model_dump(exclude_unset=True))


@router.get("/profile/favorites", response_model=List[schemas.AuctionSummary])
def favorites(profile: Profile = Depends(require_profile), db: Session = Depends(get_db)):
    return [_summary(a, n) for a, n in crud.list_favorites(db, profile.id)]


# ---- inventory passthrough ----

@router.get("/cars", response_model=List[schemas.Car])
def cars(client: InventoryClient = Depends(get_inventory_client)):
    out = []
    for raw in client.list_cars():
        try:
            out.append(schemas.Car.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning("Skipping malformed inventory car %s: %s", raw.get("id"), e)
    return out


@router.get("/cars/{car_id}", response_model=schemas.Car)
def get_car(car_id: str, client: InventoryClient = Depends(get_inventory_client)):
    car = client.get_car(car_id)
    if not car:
        raise NotFound("car", car_id)
    return schemas.Car.model_validate(car)


@router.post("/cars", response_model=schemas.Car, status_code=201)
def add_car(payload: schemas.Car, client: InventoryClient = Depends(get_inventory_client)):
    created = client.add_car(payload.model_dump(by_alias=True, exclude_none=True, exclude={"id"}))
    return schemas.Car.model_validate(created)
