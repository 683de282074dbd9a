"""Authentication and rate limiting helpers for the API."""

import os
import logging
from typing import List, Optional

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

EDIT_DONATIONS = "donations.edit"

security = HTTPBearer(auto_error=False)

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "120/minute")
INITIATOR_RATE_LIMIT = os.getenv("INITIATOR_RATE_LIMIT", "30/minute")


class Principal(BaseModel):
    """The signed-in user a charge or subscription is made on behalf of."""
    church_id: str
    person_id: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    def check_access(self, permission: str) -> bool:
        return permission in self.permissions


def decode_principal(token: str) -> Principal:
    """Decode a session token into a Principal.

    Raises:
        HTTPException: 401 if the token is invalid, expired or lacks a church.
    """
    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.error("JWT_SECRET environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    church_id = claims.get("church_id")
    if not church_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(
        church_id=str(church_id),
        person_id=claims.get("person_id"),
        permissions=list(claims.get("permissions") or []),
    )


async def require_donation_editor(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Principal:
    """Dependency: a principal allowed to edit the church's donations."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    principal = decode_principal(credentials.credentials)
    if not principal.check_access(EDIT_DONATIONS):
        raise HTTPException(status_code=401, detail="Not authorized to edit donations")
    return principal
