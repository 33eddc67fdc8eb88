"""
ripple.api.deps — FastAPI dependency injection
===============================================

Process-wide engine and config, plus the admin guard.  Admin tokens are
HS256 JWTs minted by the platform's identity service; the ``sub`` claim
becomes the ``actor_id`` on every admin_log row.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from ripple.config import RippleConfig, load_config
from ripple.database.engine import create_db_engine

# Placeholders shipped in .env.example and the docs.
_PLACEHOLDER_SECRETS = frozenset({"ripple-dev-secret-change-me", "change-me"})
_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Read JWT_SECRET; refuse to start the API on a missing or weak one."""
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable is not set (see .env.example)")
    if secret in _PLACEHOLDER_SECRETS:
        raise RuntimeError(f"JWT_SECRET is still the known weak default {secret!r}")
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} < {_MIN_SECRET_LENGTH} chars)"
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> RippleConfig:
    return load_config()


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not claims.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    if not claims.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return claims


EngineDep = Annotated[Engine, Depends(get_engine)]
ConfigDep = Annotated[RippleConfig, Depends(get_config)]
AdminDep = Annotated[dict, Depends(get_current_admin)]
