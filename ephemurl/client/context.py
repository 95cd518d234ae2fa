"""
Explicitly owned state shared by the registration and refresh flows.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import TYPE_CHECKING

from ephemurl.common.crypto import KeyAgreement
from ephemurl.common.models import CachedCredential

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ephemurl.client.api import BeaconApi
    from ephemurl.client.clock import ClockSync
    from ephemurl.client.credentials import CredentialCache
    from ephemurl.common.config import Config
    from ephemurl.common.interfaces import IAdvertiser, IRecordStore

logger = logging.getLogger(__name__)


class BeaconContext:
    """Collaborators and process-wide state passed to every flow.

    Only the credential cache and the clock offset are shared across
    beacons; writes to a single beacon record go through ``locked``. Record
    locks are thread locks, so they hold across event loops and threads.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: Config,
        api: BeaconApi,
        store: IRecordStore,
        clock: ClockSync,
        credentials: CredentialCache,
        advertiser: IAdvertiser,
        key_agreement: KeyAgreement | None = None,
    ):
        self.config = config
        self.api = api
        self.store = store
        self.clock = clock
        self.credentials = credentials
        self.advertiser = advertiser
        self.key_agreement = key_agreement or KeyAgreement()
        self._record_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def record_lock(self, record_id: str) -> threading.Lock:
        """Lock serializing updates of one beacon record."""
        with self._locks_guard:
            lock = self._record_locks.get(record_id)
            if lock is None:
                lock = self._record_locks[record_id] = threading.Lock()
            return lock

    @contextlib.asynccontextmanager
    async def locked(self, record_id: str) -> AsyncIterator[None]:
        """Hold the record lock without blocking the running event loop."""
        lock = self.record_lock(record_id)
        if not lock.acquire(blocking=False):
            await asyncio.to_thread(lock.acquire)
        try:
            yield
        finally:
            lock.release()

    def forget_record(self, record_id: str) -> None:
        with self._locks_guard:
            self._record_locks.pop(record_id, None)

    async def sign_in(self, assertion: str) -> CachedCredential:
        """Exchange an identity assertion for an access credential."""
        access = await self.api.authenticate(assertion)
        credential = CachedCredential(
            token=access.access_token,
            expire_at=self.clock.now() + access.expires_in,
        )
        self.credentials.store(credential)
        logger.info("Signed in, credential valid for %d seconds", access.expires_in)
        return credential

    def sign_out(self) -> None:
        self.credentials.clear()
