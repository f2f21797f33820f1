from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import jwt
from fastapi import Header, HTTPException, status

from ..config import ALLOW_NO_AUTH, JWT_ALGORITHMS, JWT_SECRET

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Malformed Authorization header")
    return token.strip()


def decode_token(token: str) -> dict[str, Any]:
    if JWT_SECRET:
        try:
            return jwt.decode(token, JWT_SECRET, algorithms=JWT_ALGORITHMS)
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from None
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    if not ALLOW_NO_AUTH:
        logger.error("Missing JWT_SECRET while ALLOW_NO_AUTH is false (server misconfigured)")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="jwt_secret_missing")

    # Local dev only: trust the claims without checking the signature.
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> CurrentUser:
    token = _bearer_token(authorization)
    if token is None:
        if ALLOW_NO_AUTH:
            return CurrentUser(id=(x_user_id or "").strip() or "anonymous")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    claims = decode_token(token)
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
    email = claims.get("email") if isinstance(claims.get("email"), str) else None
    return CurrentUser(id=subject, email=email, claims=claims)
