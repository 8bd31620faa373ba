# motorbid/errors.py
"""Error taxonomy shared by the domain, persistence and HTTP layers.

Every failure a caller can run into is one of these. The HTTP layer maps them
to status codes in `motorbid.main`; nothing here knows about FastAPI.
"""
from decimal import Decimal
from typing import Dict, Optional


class MarketError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict:
        return {"error": self.code, "message": self.message}


class ValidationError(MarketError):
    """Malformed input. `errors` maps field name to a human readable message."""
    code = "validation_error"
    status_code = 422

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = dict(errors)

    def to_dict(self) -> Dict:
        out = super().to_dict()
        out["fields"] = self.errors
        return out


class Unauthorized(MarketError):
    code = "unauthorized"
    status_code = 401


class Forbidden(MarketError):
    code = "forbidden"
    status_code = 403


class NotFound(MarketError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, ident):
        super().__init__(f"{entity} {ident} not found")
        self.entity = entity
        self.ident = ident


class ConstraintViolation(MarketError):
    code = "constraint_violation"
    status_code = 409


class AuctionNotActive(ConstraintViolation):
    code = "auction_not_active"

    def __init__(self, auction_id, status: str):
        super().__init__(f"auction {auction_id} is not open for bidding (status: {status})")
        self.status = status


class BidTooLow(ConstraintViolation):
    code = "bid_too_low"

    def __init__(self, floor: Decimal):
        super().__init__(f"bid must be at least {floor}")
        self.floor = floor

    def to_dict(self) -> Dict:
        out = super().to_dict()
        out["minimum_bid"] = str(self.floor)
        return out


class AuctionHasBids(ConstraintViolation):
    code = "auction_has_bids"

    def __init__(self, auction_id):
        super().__init__(f"auction {auction_id} already has bids and cannot be withdrawn")


class DuplicateVerification(ConstraintViolation):
    code = "duplicate_verification"

    def __init__(self):
        super().__init__("this identity has already been used to verify another account")


class VerificationFailed(MarketError):
    code = "verification_failed"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> Dict:
        out = super().to_dict()
        out["details"] = self.details
        return out


class UpstreamUnavailable(MarketError):
    code = "upstream_unavailable"
    status_code = 503

    def __init__(self, service: str, reason: str = ""):
        msg = f"{service} is unavailable"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.service = service
