# motorbid/auth.py
"""Access-token verification and the FastAPI dependencies built on it.

Sessions are issued by the hosted authentication provider as HS256 JWTs whose
`sub` claim is the user id. We only verify them; we never issue them.
The token is read from the `access_token` cookie (browser) or an
`Authorization: Bearer` header (API clients).
"""
from typing import Dict, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import crud
from .config import ADMIN_USER_IDS, SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .db import get_db
from .errors import Unauthorized
from .models import Profile
from .utils import logger

ACCESS_COOKIE = "access_token"
VERIFIED_SESSION_KEY = "worldid_verified"


def decode_access_token(token: str) -> Optional[Dict]:
    """Return the token claims, or None if the token is invalid or expired."""
    if not SUPABASE_JWT_SECRET:
        logger.warning("SUPABASE_JWT_SECRET not set; rejecting access token")
        return None
    try:
        claims = jwt.decode(token, SUPABASE_JWT_SECRET, algorithms=["HS256"], audience=SUPABASE_JWT_AUDIENCE)
    except JWTError as e:
        logger.info("Rejected access token: %s", e)
        return None
    if not claims.get("sub"):
        return None
    return claims


def _token_from(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            token = header[7:]
    return token or None


def get_claims(request: Request) -> Optional[Dict]:
    """Claims of the current user (`sub` is the user id), or None when anonymous."""
    token = _token_from(request)
    if not token:
        return None
    return decode_access_token(token)


def profile_from_claims(db: Session, claims: Dict) -> Profile:
    meta = claims.get("user_metadata") or {}
    return crud.ensure_profile(
        db, claims["sub"],
        email=claims.get("email"),
        full_name=meta.get("full_name"),
        avatar_url=meta.get("avatar_url"),
    )


def require_profile(request: Request, db: Session = Depends(get_db)) -> Profile:
    """Require authentication; the profile is created on first sight of a user."""
    claims = get_claims(request)
    if claims is None:
        raise Unauthorized("Authentication required.")
    return profile_from_claims(db, claims)


def is_admin(user_id: str) -> bool:
    return user_id in ADMIN_USER_IDS


def session_verified(request: Request) -> bool:
    """True when the signed session carries a World ID verification marker."""
    return bool(request.session.get(VERIFIED_SESSION_KEY))
