"""Infrastructure layer: Advertising backend that only logs frames.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemurl.common.models import BeaconRecord

logger = logging.getLogger(__name__)


class LoggingAdvertiser:
    """Stands in for a radio driver: records and logs what would be broadcast."""

    def __init__(self) -> None:
        self.broadcasting: dict[str, str] = {}
        self.errors: list[tuple[str, str, str]] = []

    def start_advertising(
        self, record: BeaconRecord, url: str, token: str | None = None
    ) -> None:
        self.broadcasting[record.record_id] = url
        if token is not None:
            logger.info(
                "Beacon %s advertising %s (token %s)", record.record_id, url, token
            )
        else:
            logger.info("Beacon %s advertising %s", record.record_id, url)

    def report_error(self, record: BeaconRecord, event: str, message: str) -> None:
        self.broadcasting.pop(record.record_id, None)
        self.errors.append((record.record_id, event, message))
        logger.error("Beacon %s %s: %s", record.record_id, event, message)
