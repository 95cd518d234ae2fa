"""
Beacon client facade.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from ephemurl.client.application.lease_refresh import LeaseRefreshFlow
from ephemurl.client.application.registration import BeaconRegistrationFlow
from ephemurl.client.application.runner import AdvertisingRunner, current_token
from ephemurl.client.infrastructure.config_loader import ConfigLoader
from ephemurl.common.models import BeaconRecord, CachedCredential, ClientConfig

if TYPE_CHECKING:
    from ephemurl.client.domain.entities import RefreshResult
    from ephemurl.common.interfaces import IAdvertiser, ITransport
    from ephemurl.common.models import TokenInfo

logger = logging.getLogger(__name__)


class BeaconClient:
    """Registers rotating beacons and keeps their URLs advertised."""

    def __init__(
        self,
        transport: ITransport | None = None,
        advertiser: IAdvertiser | None = None,
        on_error_callback: Callable[[Exception], None] | None = None,
        **kwargs: Any,
    ):
        self.config_loader = ConfigLoader(ClientConfig(**kwargs))
        self.context = self.config_loader.build_context(transport, advertiser)
        self.registration = BeaconRegistrationFlow(self.context)
        self.lease_refresh = LeaseRefreshFlow(self.context)
        self.runner = AdvertisingRunner(self.context, on_error_callback)

    async def sign_in(self, assertion: str) -> CachedCredential:
        return await self.context.sign_in(assertion)

    def sign_out(self) -> None:
        self.context.sign_out()

    def is_signed_in(self) -> bool:
        return self.context.credentials.get() is not None

    async def sync_clock(self) -> int:
        """Sync with the service clock. Returns the offset in millis."""
        offset = await self.context.clock.sync(self.context.api)
        logger.info("Clock offset: %d ms", offset)
        return offset

    async def register_beacon(
        self, rotation_exponent: int | None = None, tag: str | None = None
    ) -> BeaconRecord:
        if rotation_exponent is None:
            rotation_exponent = self.context.config.DEFAULT_ROTATION_EXPONENT
        return await self.registration.register(rotation_exponent, tag)

    def add_leased_beacon(
        self, url_id: int, url_token: str, time_to_live: int = 0, tag: str | None = None
    ) -> BeaconRecord:
        return self.lease_refresh.add_leased_beacon(
            url_id, url_token, time_to_live, tag
        )

    async def refresh(self, record: BeaconRecord) -> RefreshResult:
        return await self.lease_refresh.refresh(record)

    async def check_token(self, token: str) -> TokenInfo:
        return await self.context.api.check_token(
            self.context.credentials.auth_header(), token
        )

    def beacons(self) -> list[BeaconRecord]:
        return self.context.store.query()

    def get_beacon(self, record_id: str) -> BeaconRecord | None:
        for record in self.beacons():
            if record.record_id == record_id:
                return record
        return None

    def delete_beacon(self, record: BeaconRecord) -> None:
        self.context.store.delete(record)
        self.context.forget_record(record.record_id)

    def current_token(self, record: BeaconRecord) -> str | None:
        return current_token(self.context, record)

    def start_in_thread(self) -> None:
        self.runner.start_in_thread()

    def stop(self) -> None:
        self.runner.stop()
