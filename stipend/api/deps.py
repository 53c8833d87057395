"""
stipend.api.deps — FastAPI dependency injection
=================================================

Authentication is consumed, not issued: callers present a bearer JWT
(HS256, signed with ``JWT_SECRET``) whose ``sub`` claim is the user's
external identifier.  The matching user row is created on first sight.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy import Engine

from stipend.config import StipendConfig, load_config
from stipend.database.engine import create_db_engine
from stipend.engine.stores import UserSnapshot
from stipend.services.reward_service import RewardProcessor
from stipend.services.user_service import ensure_user

_WEAK_SECRETS = frozenset({
    "supersecret",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> StipendConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_processor() -> RewardProcessor:
    """Process-wide processor; the catalog is built exactly once here."""
    return RewardProcessor(get_engine(), get_config().catalog())


def _bearer_claims(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing auth token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token expired")
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid auth token")


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> UserSnapshot:
    """Validate the bearer JWT and return (creating if needed) its user."""
    claims = _bearer_claims(authorization)
    external_id = claims.get("sub") or claims.get("id")
    if external_id is None or str(external_id) == "":
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return ensure_user(engine, str(external_id), claims.get("username"))
