"""Bearer token signing and password hashing.

Tokens are compact JWTs signed with HMAC-SHA256:
``base64url(header).base64url(payload).base64url(signature)``. The payload
carries ``userId``, ``email``, ``role``, ``iat`` and ``exp``.

Example:
    Issue and verify a token:
        >>> token = sign_token({"userId": "u1", "email": "a@b.c",
        ...                     "role": "viewer"}, "secret")
        >>> verify_token(token, "secret")["userId"]
        'u1'
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from typing import Any

from gis_viewer.core import config, errors

_HEADER = {"alg": "HS256", "typ": "JWT"}
_PBKDF2_ITERATIONS = 260_000


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(signing_input: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        signing_input.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return _b64url_encode(digest)


def sign_token(
    claims: dict[str, Any],
    secret: str,
    ttl_seconds: int = config.SEVEN_DAYS_SECONDS,
    now: int | None = None,
) -> str:
    """Sign ``claims`` into a token that expires after ``ttl_seconds``.

    Args:
        claims: Payload fields (``userId``, ``email``, ``role``).
        secret: HMAC key.
        ttl_seconds: Lifetime added to ``iat`` to produce ``exp``.
        now: Issue time in epoch seconds; defaults to the current time.

    Returns:
        The encoded token string.
    """
    issued_at = int(time.time()) if now is None else now
    payload = {**claims, "iat": issued_at, "exp": issued_at + ttl_seconds}
    encoded_header = _b64url_encode(
        json.dumps(_HEADER, separators=(",", ":")).encode("utf-8")
    )
    encoded_payload = _b64url_encode(
        json.dumps(payload, separators=(",", ":")).encode("utf-8")
    )
    signing_input = f"{encoded_header}.{encoded_payload}"
    return f"{signing_input}.{_sign(signing_input, secret)}"


def verify_token(
    token: str,
    secret: str,
    now: int | None = None,
) -> dict[str, Any]:
    """Verify signature and expiry and return the payload.

    Raises:
        InvalidTokenError: If the token is malformed, the signature does not
            match, or ``exp`` is in the past.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise errors.InvalidTokenError("Invalid token format")

    encoded_header, encoded_payload, signature = parts
    expected = _sign(f"{encoded_header}.{encoded_payload}", secret)
    if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        raise errors.InvalidTokenError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(encoded_payload))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise errors.InvalidTokenError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise errors.InvalidTokenError("Invalid token payload")

    current = int(time.time()) if now is None else now
    exp = payload.get("exp")
    if isinstance(exp, int | float) and exp < current:
        raise errors.InvalidTokenError("Token expired")

    return payload


def hash_password(password: str, salt: bytes | None = None) -> str:
    """Hash a password as ``pbkdf2_sha256$iterations$salt$digest``."""
    salt = salt if salt is not None else os.urandom(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        _PBKDF2_ITERATIONS,
    )
    return "$".join(
        (
            "pbkdf2_sha256",
            str(_PBKDF2_ITERATIONS),
            salt.hex(),
            digest.hex(),
        )
    )


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iterations, salt_hex, digest_hex = password_hash.split("$")
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False

    try:
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest.hex(), digest_hex)
