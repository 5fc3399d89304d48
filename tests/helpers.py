"""Shared test helpers (plain functions, not fixtures).

Importable from any test module: JWT signing material, fake users, booking
rows and a mocked txn() cursor.
"""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from roombook.api.auth import CurrentUser

OIDC_ENV = {
    "OIDC_ISSUER": "https://id.example.com",
    "OIDC_AUDIENCE": "roombook-api",
    "OIDC_JWKS_URL": "https://id.example.com/.well-known/jwks.json",
}

ROOM_ID = "11111111-1111-1111-1111-111111111111"
TOUR_ROOM_ID = "22222222-2222-2222-2222-222222222222"
USER_ID = "33333333-3333-3333-3333-333333333333"
ADMIN_ID = "44444444-4444-4444-4444-444444444444"
BOOKING_ID = "55555555-5555-5555-5555-555555555555"


def generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://id.example.com",
    aud: str = "roombook-api",
    exp: int | None = None,
    azp: str | None = None,
    email: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    if email:
        payload["email"] = email

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_user(role: str = "user", user_id: str = USER_ID) -> CurrentUser:
    return CurrentUser(
        id=user_id,
        external_subject=f"sub-{user_id[:8]}",
        email="reader@example.com",
        name="Reader",
        role=role,
    )


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def booking_dict(
    booking_id: str = BOOKING_ID,
    *,
    user_id: str = USER_ID,
    room_id: str = ROOM_ID,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str = "pending",
    is_tour: bool = False,
    guest_count: int | None = 10,
) -> dict:
    """Booking as returned by bookings_repository.booking_row_to_dict."""
    start = start or utc(2025, 3, 10, 9)
    end = end or utc(2025, 3, 10, 11)
    return {
        "id": booking_id,
        "user_id": user_id,
        "room_id": room_id,
        "start_time": start.isoformat(),
        "end_time": end.isoformat(),
        "status": status,
        "event_description": "Book club",
        "guest_count": guest_count,
        "proposal_file": None,
        "notes": None,
        "is_tour": is_tour,
        "tour_name": "Library Tour" if is_tour else None,
        "tour_guide": "Library Staff" if is_tour else None,
        "tour_meeting_point": "Main Entrance" if is_tour else None,
        "created_at": utc(2025, 3, 1).isoformat(),
        "updated_at": utc(2025, 3, 1).isoformat(),
    }


def mock_txn_factory(cur: MagicMock | None = None):
    """Return (fake txn, cursor). The fake accepts txn()'s arguments."""
    cur = cur or MagicMock()

    @contextmanager
    def fake_txn(*args, **kwargs):
        yield cur

    return fake_txn, cur
