"""Key agreement and identity key derivation.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, hmac, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ephemurl.common.exceptions import InvalidKey, Unavailable

KEY_LENGTH = 32
ZERO_SECRET = bytes(KEY_LENGTH)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPair:
    """Raw X25519 key pair. The private key never leaves the device."""

    public_key: bytes
    private_key: bytes


def b64u_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64u_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def hmac_sha256(key: bytes, data: bytes) -> bytes:
    """Single HMAC-SHA256 evaluation."""
    try:
        mac = hmac.HMAC(key, hashes.SHA256())
    except UnsupportedAlgorithm as err:
        msg = f"HMAC-SHA256 is not available: {err}"
        raise Unavailable(msg) from err
    mac.update(data)
    return mac.finalize()


class KeyAgreement:
    """X25519 key agreement and HKDF identity key derivation."""

    def generate_key_pair(self) -> KeyPair:
        """Generate a fresh X25519 key pair from a uniform random scalar."""
        private_key = X25519PrivateKey.generate()
        return KeyPair(
            public_key=private_key.public_key().public_bytes(
                serialization.Encoding.Raw, serialization.PublicFormat.Raw
            ),
            private_key=private_key.private_bytes(
                serialization.Encoding.Raw,
                serialization.PrivateFormat.Raw,
                serialization.NoEncryption(),
            ),
        )

    def agree(self, server_public_key: bytes, private_key: bytes) -> bytes:
        """Compute the raw X25519 shared secret.

        A degenerate (all-zero) result is returned as zero bytes rather than
        raised, so callers can tell it apart from malformed keys.
        """
        if len(server_public_key) != KEY_LENGTH or len(private_key) != KEY_LENGTH:
            msg = f"X25519 keys must be {KEY_LENGTH} bytes"
            raise InvalidKey(msg)
        try:
            peer = X25519PublicKey.from_public_bytes(server_public_key)
            own = X25519PrivateKey.from_private_bytes(private_key)
        except ValueError as err:
            raise InvalidKey(str(err)) from err

        try:
            return own.exchange(peer)
        except ValueError:
            # cryptography refuses small-order points outright
            return ZERO_SECRET

    def derive_identity_key(
        self,
        shared_secret: bytes,
        server_public_key: bytes,
        beacon_public_key: bytes,
    ) -> bytes:
        """Derive the 32-byte identity key.

        HKDF-SHA256 with salt = server key || beacon key and empty info.
        """
        try:
            hkdf = HKDF(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=server_public_key + beacon_public_key,
                info=b"",
            )
        except UnsupportedAlgorithm as err:
            msg = f"HKDF-SHA256 is not available: {err}"
            raise Unavailable(msg) from err
        return hkdf.derive(shared_secret)

    def agree_nonzero(self, server_public_key: bytes) -> tuple[KeyPair, bytes]:
        """Generate key pairs until the shared secret is not all zero."""
        while True:
            key_pair = self.generate_key_pair()
            shared_secret = self.agree(server_public_key, key_pair.private_key)
            if shared_secret != ZERO_SECRET:
                return key_pair, shared_secret
            logger.debug("Degenerate shared secret, regenerating key pair")
