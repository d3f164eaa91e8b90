"""Identity resolution from Clerk-issued bearer tokens.

Requests may be anonymous: a missing ``Authorization`` header yields no
identity rather than an error.  A header that is present but does not
carry a valid token is rejected with 401.

Tokens are verified against the JWKS at ``CLERK_JWKS_URL`` (RS256).  When
``CLERK_JWT_AUDIENCE`` and/or ``CLERK_JWT_ISSUER`` are set the
corresponding claims are validated as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from fastapi import Depends, HTTPException, Request, status
from jose import jwt

from spendlog.core.config import settings

logger = logging.getLogger(__name__)

DEV_IDENTITY_SUBJECT = "user_dev123"

# JWKS cache.  Refetched once when a token names an unknown key id (rotation).
_clerk_jwks: Optional[Dict] = None


@dataclass(frozen=True)
class Identity:
    """Authenticated caller."""

    user_id: str
    email: Optional[str] = None


def get_clerk_jwks(refresh: bool = False) -> Dict:
    """Fetch and cache the JWKS used to verify Clerk tokens."""
    global _clerk_jwks
    if _clerk_jwks is not None and not refresh:
        return _clerk_jwks
    if not settings.CLERK_JWKS_URL:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="CLERK_JWKS_URL is not configured",
        )
    try:
        resp = requests.get(settings.CLERK_JWKS_URL, timeout=5)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Failed to fetch JWKS: {exc}") from exc
    if not isinstance(data, dict) or "keys" not in data:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Invalid JWKS payload from Clerk")
    _clerk_jwks = data
    return data


def _find_key(jwks: Dict, kid: str) -> Optional[Dict]:
    return next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)


def decode_clerk_jwt(token: str) -> Dict:
    """Decode and verify a Clerk JWT.

    Raises:
        HTTPException: 401 if the token is malformed or invalid.
    """
    try:
        header = jwt.get_unverified_header(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token header: {exc}") from exc
    kid = header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid Clerk token: missing kid header")
    key = _find_key(get_clerk_jwks(), kid)
    if not key:
        key = _find_key(get_clerk_jwks(refresh=True), kid)
        if not key:
            raise HTTPException(status_code=401, detail="Unknown signing key (kid) for Clerk token")

    decode_kwargs: Dict = {"algorithms": ["RS256"], "options": {}}
    if settings.CLERK_JWT_AUDIENCE:
        decode_kwargs["audience"] = settings.CLERK_JWT_AUDIENCE
    else:
        decode_kwargs["options"]["verify_aud"] = False
    if settings.CLERK_JWT_ISSUER:
        decode_kwargs["issuer"] = settings.CLERK_JWT_ISSUER
    try:
        return jwt.decode(token, key, **decode_kwargs)
    except Exception as exc:
        raise HTTPException(status_code=401, detail=f"Invalid Clerk token: {exc}") from exc


async def get_optional_identity(request: Request) -> Optional[Identity]:
    """FastAPI dependency: the caller's identity, or None for anonymous requests."""
    if settings.DEV_AUTH_BYPASS:
        return Identity(user_id=DEV_IDENTITY_SUBJECT, email="dev@example.com")

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Authorization header must be a Bearer token")

    payload = decode_clerk_jwt(token.strip())
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid Clerk token: no sub claim")
    logger.debug("[auth] resolved identity sub=%s", subject)
    return Identity(user_id=subject, email=payload.get("email"))


async def require_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity
