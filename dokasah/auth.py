"""
Access token issuing and decoding.

Tokens are JWTs carrying the caller's id, email, role, name and avatar.
Anything that fails to decode is treated as unauthenticated.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from jose import jwt
from jose.exceptions import JWTError

from dokasah.access import USER, Principal
from dokasah.config import Settings
from dokasah.db import UserRecord
from dokasah.errors import Unauthenticated

logger = logging.getLogger(__name__)


def issue_token(user: UserRecord, settings: Settings) -> str:
    now = int(time.time())
    claims = {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "name": user.name,
        "profile_pictures": user.profile_pictures,
        "iat": now,
        "exp": now + settings.token_ttl_seconds,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Principal:
    try:
        claims = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise Unauthenticated("Token invalid or expired") from exc
    if claims.get("id") is None or not claims.get("email"):
        raise Unauthenticated("Token is missing identity claims")
    return Principal(
        id=int(claims["id"]),
        email=claims["email"],
        role=claims.get("role") or USER,
        name=claims.get("name"),
        avatar=claims.get("profile_pictures"),
    )


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None
