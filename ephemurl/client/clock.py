"""
Offset between the local clock and the service clock.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from ephemurl.client.domain.entities import AtomicCell

if TYPE_CHECKING:
    from ephemurl.client.api import BeaconApi

logger = logging.getLogger(__name__)


def _local_millis() -> int:
    return int(time.time() * 1000)


class ClockSync:
    """Corrects the local clock by the last recorded server offset.

    Before the first sync the local clock is returned uncorrected.
    """

    def __init__(self, local_clock: Callable[[], int] = _local_millis) -> None:
        self._local_clock = local_clock
        self._offset: AtomicCell[int | None] = AtomicCell(None)

    def record_server_time(
        self, server_epoch_millis: int, local_epoch_millis_at_receipt: int
    ) -> None:
        offset = server_epoch_millis - local_epoch_millis_at_receipt
        previous = self._offset.swap(offset)
        if previous != offset:
            logger.debug("Clock offset now %d ms", offset)

    @property
    def is_synced(self) -> bool:
        return self._offset.get() is not None

    @property
    def offset_millis(self) -> int:
        return self._offset.get() or 0

    def now_millis(self) -> int:
        return self._local_clock() + self.offset_millis

    def now(self) -> float:
        """Synchronized time in seconds."""
        return self.now_millis() / 1000

    async def sync(self, api: BeaconApi) -> int:
        """Fetch the service clock and record its offset."""
        server_millis = await api.get_server_time()
        self.record_server_time(server_millis, self._local_clock())
        return self.offset_millis
