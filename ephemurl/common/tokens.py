"""
Rotating token computation.

A token is a keyed pseudorandom function of the rotation counter, where the
counter is the number of whole rotation periods elapsed since the beacon's
epoch. Anyone holding the identity key and epoch reproduces the same token.
"""

from __future__ import annotations

import base64

from ephemurl.common.crypto import hmac_sha256

TOKEN_LENGTH = 10
ENCODED_TOKEN_LENGTH = 13
MAX_ROTATION_EXPONENT = 255
COUNTER_BYTES = 8


def rotation_period(rotation_exponent: int) -> int:
    """Rotation period in seconds."""
    if not 0 <= rotation_exponent <= MAX_ROTATION_EXPONENT:
        msg = f"rotation exponent out of range: {rotation_exponent}"
        raise ValueError(msg)
    return 1 << rotation_exponent


def rotation_counter(rotation_exponent: int, epoch: int, now_seconds: float) -> int:
    """Index of the rotation period containing ``now_seconds``."""
    period = rotation_period(rotation_exponent)
    elapsed = now_seconds - epoch
    if elapsed < 0:
        msg = f"time {now_seconds} is before beacon epoch {epoch}"
        raise ValueError(msg)
    return int(elapsed // period)


def token_for_counter(identity_key: bytes, counter: int) -> bytes:
    """Raw 10-byte token for an explicit counter value."""
    if counter < 0:
        msg = f"negative rotation counter: {counter}"
        raise ValueError(msg)
    data = counter.to_bytes(COUNTER_BYTES, "big")
    return hmac_sha256(identity_key, data)[:TOKEN_LENGTH]


def compute_token(
    identity_key: bytes,
    rotation_exponent: int,
    epoch: int,
    now_seconds: float,
) -> bytes:
    """Raw token that is current at ``now_seconds``."""
    counter = rotation_counter(rotation_exponent, epoch, now_seconds)
    return token_for_counter(identity_key, counter)


def encode_token(token: bytes) -> str:
    """Encode a raw token as its 13-character wire identifier.

    urlsafe base64 of 10 bytes gives 16 characters; only the first 13 (78
    bits) are kept.
    """
    if len(token) != TOKEN_LENGTH:
        msg = f"token must be {TOKEN_LENGTH} bytes, got {len(token)}"
        raise ValueError(msg)
    encoded = base64.urlsafe_b64encode(token).rstrip(b"=").decode("ascii")
    return encoded[:ENCODED_TOKEN_LENGTH]


def time_until_next_rotation(
    epoch: int, rotation_exponent: int, now_seconds: float
) -> float:
    """Seconds until the token changes."""
    period = rotation_period(rotation_exponent)
    elapsed = now_seconds - epoch
    if elapsed < 0:
        return -elapsed
    return period - (elapsed % period)


def advertised_url(token: bytes, prefix: str) -> str:
    """Broadcast URL for a raw token."""
    return prefix + encode_token(token)
