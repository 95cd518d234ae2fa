"""
Pydantic models for persisted records and request/response validation.
"""

from __future__ import annotations

import uuid
from datetime import datetime  # noqa: TC003
from enum import Enum
from pathlib import Path  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from ephemurl.common import tokens


class BeaconState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    ACTIVE = "active"


class BeaconStatus(str, Enum):
    OK = "ok"
    UPDATE_FAILED = "update_failed"


class Lease(BaseModel):
    """A time-bound short URL a beacon advertises."""

    url_id: int
    url_token: str
    time_to_live: int = 0  # Seconds, 0 = never expires
    current_short_url: str | None = None
    expire_at: int = 0  # Epoch millis, 0 = no deadline

    def millis_until_expires(self, now_millis: int) -> int | None:
        """Remaining lifetime, or None when the URL never expires."""
        if self.expire_at == 0:
            return None
        return self.expire_at - now_millis

    def scheduled_refresh_time(self, margin_millis: int) -> int:
        return self.expire_at - margin_millis

    def is_refresh_due(self, now_millis: int, margin_millis: int) -> bool:
        """Whether a new short URL must be issued before broadcasting."""
        if self.current_short_url is None:
            return True
        remaining = self.millis_until_expires(now_millis)
        return remaining is not None and remaining < margin_millis


class BeaconRecord(BaseModel):
    """A locally persisted beacon.

    Rotating beacons carry identity key, rotation exponent and epoch; leased
    URL beacons carry a lease. A record may carry both.
    """

    record_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: int
    identity_key: bytes | None = None
    rotation_exponent: int | None = Field(default=None, ge=0, le=255)
    epoch: int = 0  # Seconds since the UNIX epoch
    server_id: str | None = None
    state: BeaconState = BeaconState.UNREGISTERED
    status: BeaconStatus = BeaconStatus.OK
    lease: Lease | None = None
    tag: str | None = None

    @property
    def has_rotation(self) -> bool:
        return self.identity_key is not None and self.rotation_exponent is not None

    def compute_token(self, now_seconds: float) -> bytes:
        """Raw token current at ``now_seconds``."""
        if self.identity_key is None or self.rotation_exponent is None:
            msg = f"beacon {self.record_id} has no rotation material"
            raise ValueError(msg)
        return tokens.compute_token(
            self.identity_key, self.rotation_exponent, self.epoch, now_seconds
        )

    def get_lease(self) -> Lease | None:
        return self.lease

    def mark_degraded(self) -> None:
        self.status = BeaconStatus.UPDATE_FAILED


class CachedCredential(BaseModel):
    token: str
    expire_at: float  # Seconds since the UNIX epoch


# Wire models


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AuthRequest(WireModel):
    assertion: str


class AccessTokenResponse(WireModel):
    access_token: str
    expires_in: int


class ClockResponse(WireModel):
    time: int  # Epoch millis


class RegistrationParams(WireModel):
    service_public_key: str = Field(alias="serviceEcdhPublicKey")


class RegisterBeaconRequest(WireModel):
    service_public_key: str = Field(alias="serviceEcdhPublicKey")
    beacon_public_key: str = Field(alias="beaconEcdhPublicKey")
    initial_eid: str = Field(alias="initialEid")
    initial_clock: int = Field(default=0, alias="initialClockValue", ge=0, lt=2**64)
    rotation_exponent: int = Field(alias="rotationPeriodExponent", ge=0, le=255)
    tag: str | None = None


class BeaconResponse(WireModel):
    id: str
    epoch: int  # Epoch micros
    active: bool = True
    tag: str | None = None


class IssueUrlsRequest(WireModel):
    token: str
    ttl: int = 0
    count: int = Field(default=1, gt=0)


class ShortUrl(WireModel):
    url: str
    expire: datetime | None = None


class ShortUrls(WireModel):
    items: list[ShortUrl]


class TokenInfo(WireModel):
    beacon: str
    valid_since: datetime = Field(alias="validSince")
    valid_until: datetime = Field(alias="validUntil")


class ErrorDetail(WireModel):
    message: str | None = None


class ErrorBody(WireModel):
    error: ErrorDetail | None = None


class ClientConfig(BaseModel):
    service_url: str | None = None
    log_level: int | None = None
    request_timeout: int | None = None
    credential_margin: int | None = None
    lease_refresh_margin_ms: int | None = None
    url_prefix: str | None = None
    data_dir: Path | None = None
    credential_file_path: Path | None = None
    records_file_path: Path | None = None
