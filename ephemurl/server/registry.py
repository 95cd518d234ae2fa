"""
Service-side beacon registry: registration, token resolution, URL issuance.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from ephemurl.common import tokens
from ephemurl.common.crypto import (
    ZERO_SECRET,
    KeyAgreement,
    b64u_decode,
    b64u_encode,
)
from ephemurl.common.exceptions import BeaconError, InvalidKey
from ephemurl.common.models import RegisterBeaconRequest, ShortUrl

HTTP_BAD_REQUEST = 400
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
MICROS_PER_SECOND = 1_000_000
SERVICE_KEY_TTL = 600  # Seconds a service key waits for its registration

logger = logging.getLogger(__name__)


@dataclass
class RegisteredBeacon:
    id: str
    identity_key: bytes
    rotation_exponent: int
    epoch_micros: int
    beacon_public_key: bytes
    tag: str | None = None
    active: bool = True

    @property
    def epoch(self) -> int:
        return self.epoch_micros // MICROS_PER_SECOND


@dataclass
class UrlResource:
    token: str
    issued: list[str] = field(default_factory=list)


class BeaconRegistry:
    """Holds pending service keys and registered beacons in memory."""

    def __init__(
        self,
        url_prefix: str,
        key_agreement: KeyAgreement | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url_prefix = url_prefix
        self.key_agreement = key_agreement or KeyAgreement()
        self.clock = clock
        self.pending_keys: dict[bytes, tuple[bytes, float]] = {}
        self.beacons: dict[str, RegisteredBeacon] = {}
        self.by_public_key: dict[bytes, str] = {}
        self.url_resources: dict[int, UrlResource] = {}
        self._lock = threading.Lock()

    def issue_service_key(self) -> bytes:
        """Fresh service ECDH public key, kept pending for one registration."""
        key_pair = self.key_agreement.generate_key_pair()
        now = self.clock()
        with self._lock:
            stale = [
                public_key
                for public_key, (_, issued_at) in self.pending_keys.items()
                if now - issued_at > SERVICE_KEY_TTL
            ]
            for public_key in stale:
                del self.pending_keys[public_key]
            self.pending_keys[key_pair.public_key] = (key_pair.private_key, now)
        return key_pair.public_key

    def register(self, req: RegisterBeaconRequest) -> RegisteredBeacon:
        service_public_key = self._decode_key(req.service_public_key)
        beacon_public_key = self._decode_key(req.beacon_public_key)

        with self._lock:
            if beacon_public_key in self.by_public_key:
                raise BeaconError("beacon_exists", HTTP_CONFLICT)
            pending = self.pending_keys.pop(service_public_key, None)
            if pending is None:
                raise BeaconError("unknown_service_key", HTTP_BAD_REQUEST)
            service_private_key, issued_at = pending
            if self.clock() - issued_at > SERVICE_KEY_TTL:
                raise BeaconError("unknown_service_key", HTTP_BAD_REQUEST)

            try:
                shared_secret = self.key_agreement.agree(
                    beacon_public_key, service_private_key
                )
            except InvalidKey as err:
                raise BeaconError("invalid_beacon_key", HTTP_BAD_REQUEST) from err
            if shared_secret == ZERO_SECRET:
                raise BeaconError("invalid_beacon_key", HTTP_BAD_REQUEST)

            identity_key = self.key_agreement.derive_identity_key(
                shared_secret, service_public_key, beacon_public_key
            )
            expected = tokens.encode_token(
                tokens.token_for_counter(identity_key, req.initial_clock)
            )
            if req.initial_eid != expected:
                raise BeaconError("initial_eid_mismatch", HTTP_BAD_REQUEST)

            beacon = RegisteredBeacon(
                id=uuid.uuid4().hex,
                identity_key=identity_key,
                rotation_exponent=req.rotation_exponent,
                epoch_micros=int(self.clock() * MICROS_PER_SECOND),
                beacon_public_key=beacon_public_key,
                tag=req.tag,
            )
            self.beacons[beacon.id] = beacon
            self.by_public_key[beacon_public_key] = beacon.id

        logger.info("Registered beacon %s", beacon.id)
        return beacon

    def get(self, beacon_id: str) -> RegisteredBeacon:
        beacon = self.beacons.get(beacon_id)
        if beacon is None:
            raise BeaconError("beacon_not_found", HTTP_NOT_FOUND)
        return beacon

    def resolve(self, token: str) -> tuple[RegisteredBeacon, datetime, datetime]:
        """Find the beacon broadcasting ``token`` in the current or previous period."""
        now = self.clock()
        for beacon in list(self.beacons.values()):
            if not beacon.active:
                continue
            exponent = beacon.rotation_exponent
            period = tokens.rotation_period(exponent)
            at = max(now, beacon.epoch)
            counter = tokens.rotation_counter(exponent, beacon.epoch, at)
            for candidate in (counter, counter - 1):
                if candidate < 0:
                    continue
                raw = tokens.token_for_counter(beacon.identity_key, candidate)
                if tokens.encode_token(raw) == token:
                    since = beacon.epoch + candidate * period
                    return (
                        beacon,
                        datetime.fromtimestamp(since, timezone.utc),
                        datetime.fromtimestamp(since + period, timezone.utc),
                    )
        raise BeaconError("token_not_found", HTTP_NOT_FOUND)

    def issue_urls(
        self, url_id: int, url_token: str, ttl: int, count: int
    ) -> list[ShortUrl]:
        """Issue short URLs for a URL resource.

        The first issue binds ``url_token`` to ``url_id``.
        """
        with self._lock:
            resource = self.url_resources.setdefault(url_id, UrlResource(url_token))
            if resource.token != url_token:
                raise BeaconError("invalid_url_token", HTTP_FORBIDDEN)
            expire = None
            if ttl > 0:
                expire = datetime.fromtimestamp(self.clock() + ttl, timezone.utc)
            urls = []
            for _ in range(count):
                url = self.url_prefix + b64u_encode(os.urandom(6))
                resource.issued.append(url)
                urls.append(ShortUrl(url=url, expire=expire))
        return urls

    @staticmethod
    def _decode_key(text: str) -> bytes:
        try:
            key = b64u_decode(text)
        except ValueError as err:
            raise BeaconError("invalid_key_encoding", HTTP_BAD_REQUEST) from err
        if len(key) != len(ZERO_SECRET):
            raise BeaconError("invalid_key_length", HTTP_BAD_REQUEST)
        return key
