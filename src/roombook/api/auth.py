"""OIDC JWT authentication.

Provides:
- verify_token(): Validates JWT and returns its claims
- get_current_user(): FastAPI dependency resolving (and provisioning) the user
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import HTTPException, Request

# JWKS cache with TTL
_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()
_JWKS_CACHE_TTL = 600  # 10 minutes


@dataclass
class CurrentUser:
    """Authenticated user context."""

    id: str
    external_subject: str
    email: str | None
    name: str | None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _get_settings() -> dict[str, str | list[str] | None]:
    """Load OIDC settings from environment."""
    authorized_parties_raw = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
    authorized_parties: list[str] | None = None
    if authorized_parties_raw:
        authorized_parties = [p.strip() for p in authorized_parties_raw.split(",") if p.strip()]

    return {
        "issuer": os.environ.get("OIDC_ISSUER"),
        "audience": os.environ.get("OIDC_AUDIENCE"),
        "jwks_url": os.environ.get("OIDC_JWKS_URL"),
        "authorized_parties": authorized_parties,
    }


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    """Fetch the issuer's JWKS document."""
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _get_jwks(jwks_url: str, force_refresh: bool = False) -> dict[str, Any]:
    """Return the JWKS, served from a process-wide cache for _JWKS_CACHE_TTL seconds.

    Args:
        jwks_url: Issuer JWKS endpoint (OIDC_JWKS_URL).
        force_refresh: Bypass the cache, used when a token names an unknown
            kid or fails its signature check (key rotation).

    Returns:
        The JWKS document ({"keys": [...]}).

    Raises:
        HTTPException: 503 if the JWKS cannot be fetched.
    """
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        now = time.time()
        if not force_refresh and _jwks_cache is not None and (now - _jwks_cache_time) < _JWKS_CACHE_TTL:
            return _jwks_cache

        try:
            _jwks_cache = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        _jwks_cache_time = now
        return _jwks_cache


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    """Return the JWK whose kid matches, or None."""
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _decode(token: str, jwk_data: dict[str, Any], issuer: str, audience: str) -> dict[str, Any]:
    """Decode an RS256 token with one JWK; jwt.InvalidTokenError subclasses propagate."""
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(jwk_data)
    except (jwt.exceptions.InvalidKeyError, ValueError, TypeError, KeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=issuer,
        audience=audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> dict[str, Any]:
    """Verify an RS256 JWT against the configured issuer's JWKS.

    Unknown kid or a bad signature triggers one JWKS refresh (key rotation).

    Returns:
        Verified claims; ``sub`` is guaranteed present.

    Raises:
        HTTPException: 401 if the token is invalid or OIDC is not configured,
            503 if the JWKS cannot be fetched.
    """
    settings = _get_settings()

    issuer = settings.get("issuer")
    audience = settings.get("audience")
    jwks_url = settings.get("jwks_url")

    if not issuer or not audience or not jwks_url:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    key_data = _find_key(_get_jwks(jwks_url), kid)
    if key_data is None:
        key_data = _find_key(_get_jwks(jwks_url, force_refresh=True), kid)
    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        claims = _decode(token, key_data, issuer, audience)
    except jwt.InvalidSignatureError:
        key_data = _find_key(_get_jwks(jwks_url, force_refresh=True), kid)
        if key_data is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            claims = _decode(token, key_data, issuer, audience)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    authorized_parties = settings.get("authorized_parties")
    if authorized_parties and "azp" in claims and claims["azp"] not in authorized_parties:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")

    return claims


def _extract_bearer_token(request: Request) -> str:
    """Extract the Bearer token from the Authorization header.

    Args:
        request: Incoming FastAPI request.

    Returns:
        Raw JWT string.

    Raises:
        HTTPException: 401 if the header is missing or not "Bearer <token>".
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    return parts[1]


def _get_or_create_user(claims: dict[str, Any]) -> CurrentUser:
    """Resolve the user for a verified token, creating the row on first sight.

    Email and name are refreshed from the token when present; role is never
    taken from the token.
    """
    from roombook.infra.db import txn

    with txn() as cur:
        cur.execute(
            """
            INSERT INTO users (external_subject, email, name)
            VALUES (%s, %s, %s)
            ON CONFLICT (external_subject) DO UPDATE
                SET email = COALESCE(EXCLUDED.email, users.email),
                    name = COALESCE(EXCLUDED.name, users.name),
                    updated_at = now()
            RETURNING id, external_subject, email, name, role
            """,
            (claims["sub"], claims.get("email"), claims.get("name")),
        )
        row = cur.fetchone()

    return CurrentUser(
        id=str(row[0]),
        external_subject=row[1],
        email=row[2],
        name=row[3],
        role=row[4],
    )


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: get authenticated user.

    Raises:
        HTTPException: 401 if token invalid/missing.
    """
    token = _extract_bearer_token(request)
    claims = verify_token(token)
    return _get_or_create_user(claims)

