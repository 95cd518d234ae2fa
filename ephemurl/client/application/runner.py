"""
Application layer: Advertising scheduler driving token rotation and lease refresh.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Callable

from ephemurl.client.application.lease_refresh import LeaseRefreshFlow
from ephemurl.client.domain.entities import EVENT_START_FAILED
from ephemurl.common import tokens
from ephemurl.common.exceptions import BeaconError
from ephemurl.common.models import BeaconRecord, BeaconState

if TYPE_CHECKING:
    from ephemurl.client.context import BeaconContext

MIN_DELAY = 1.0
IDLE_DELAY = 60.0

logger = logging.getLogger(__name__)


def current_token(context: BeaconContext, record: BeaconRecord) -> str | None:
    """Encoded token a registered rotating beacon broadcasts right now."""
    if not record.has_rotation or record.server_id is None:
        return None
    # Until the service clock reaches the epoch the initial token stays current
    now = max(context.clock.now(), record.epoch)
    return tokens.encode_token(record.compute_token(now))


def current_url(context: BeaconContext, record: BeaconRecord) -> str:
    """URL a beacon broadcasts right now: its lease if it has one, else its token."""
    lease = record.get_lease()
    if lease is not None and lease.current_short_url is not None:
        return lease.current_short_url
    token = current_token(context, record)
    if token is None:
        msg = f"beacon {record.record_id} has nothing to advertise"
        raise ValueError(msg)
    return context.config.URL_PREFIX + token


class AdvertisingRunner:
    """Advertises active beacons, waking on the next rotation or lease refresh."""

    def __init__(
        self,
        context: BeaconContext,
        on_error_callback: Callable[[Exception], None] | None = None,
        idle_delay: float = IDLE_DELAY,
    ):
        self.context = context
        self.refresh_flow = LeaseRefreshFlow(context)
        self.on_error_callback = on_error_callback
        self.idle_delay = idle_delay
        self._thread: threading.Thread | None = None
        self._running = False

    async def on_advertise_enabled(self, record: BeaconRecord) -> bool:
        """Provision the beacon's URL if needed, then start broadcasting it."""
        lease = record.get_lease()
        margin = self.context.config.LEASE_REFRESH_MARGIN_MS
        now_millis = self.context.clock.now_millis()
        if lease is not None and lease.is_refresh_due(now_millis, margin):
            logger.debug("Updating URL for beacon %s", record.record_id)
            try:
                await self.refresh_flow.refresh(record)
            except BeaconError as err:
                self.context.advertiser.report_error(
                    record, EVENT_START_FAILED, str(err)
                )
                if self.on_error_callback:
                    self.on_error_callback(err)
                return False

        self.context.advertiser.start_advertising(
            record,
            current_url(self.context, record),
            current_token(self.context, record),
        )
        return True

    def seconds_until_next_event(self, record: BeaconRecord) -> float | None:
        """Time until the token rotates or the lease needs refreshing."""
        delays = []
        exponent = record.rotation_exponent
        rotating = record.has_rotation and record.server_id is not None
        if rotating and exponent is not None:
            delays.append(
                tokens.time_until_next_rotation(
                    record.epoch, exponent, self.context.clock.now()
                )
            )
        lease = record.get_lease()
        if lease is not None and lease.expire_at:
            refresh_at = lease.scheduled_refresh_time(
                self.context.config.LEASE_REFRESH_MARGIN_MS
            )
            delays.append((refresh_at - self.context.clock.now_millis()) / 1000)
        return min(delays) if delays else None

    async def tick(self) -> float:
        """Advertise every active beacon once. Returns seconds to sleep."""
        delays = []
        for record in self.context.store.query():
            if record.state != BeaconState.ACTIVE:
                continue
            if not await self.on_advertise_enabled(record):
                continue
            delay = self.seconds_until_next_event(record)
            if delay is not None:
                delays.append(delay)
        return max(min(delays, default=self.idle_delay), MIN_DELAY)

    async def run(self) -> None:
        """Run the advertising loop until stopped."""
        self._running = True
        try:
            while self._running:
                delay = await self.tick()
                await asyncio.sleep(delay)
        except Exception as e:
            logger.exception("Advertising loop error")
            if self.on_error_callback:
                self.on_error_callback(e)
            raise

    def start_in_thread(self) -> None:
        """Start the loop in a separate thread with its own event loop."""
        if self._thread and self._thread.is_alive():
            logger.warning("Runner is already running in a thread")
            return
        self._thread = threading.Thread(
            target=asyncio.run, args=(self.run(),), daemon=True
        )
        self._thread.start()
        logger.info("Advertising started in background thread")

    def stop(self) -> None:
        """Stop the loop after its current sleep."""
        self._running = False
        self._thread = None
        logger.info("Advertising loop stopped")
