"""
Application layer: Keeping a beacon's short URL lease valid.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ephemurl.client.domain.entities import RefreshResult
from ephemurl.common.exceptions import BeaconError
from ephemurl.common.models import BeaconRecord, BeaconState, BeaconStatus, Lease

if TYPE_CHECKING:
    from ephemurl.client.context import BeaconContext

logger = logging.getLogger(__name__)


class LeaseRefreshFlow:
    """Re-issues a beacon's short URL.

    Deciding whether a refresh is due is left to the caller; every call
    issues exactly one new URL.
    """

    def __init__(self, context: BeaconContext):
        self.context = context

    def add_leased_beacon(
        self,
        url_id: int,
        url_token: str,
        time_to_live: int = 0,
        tag: str | None = None,
    ) -> BeaconRecord:
        """Create an active beacon for an already registered URL resource."""
        record = BeaconRecord(
            kind=self.context.config.KIND_LEASED_URL,
            lease=Lease(url_id=url_id, url_token=url_token, time_to_live=time_to_live),
            state=BeaconState.ACTIVE,
            tag=tag,
        )
        self.context.store.insert(record)
        return record

    async def change_ttl(self, record: BeaconRecord, time_to_live: int) -> None:
        """Change the lease TTL. The current short URL is dropped so the next
        broadcast issues one with the new TTL."""
        async with self.context.locked(record.record_id):
            lease = record.get_lease()
            if lease is None or lease.time_to_live == time_to_live:
                return
            record.lease = lease.model_copy(
                update={
                    "time_to_live": time_to_live,
                    "current_short_url": None,
                    "expire_at": 0,
                }
            )
            self.context.store.update(record, {"lease"})

    async def refresh(self, record: BeaconRecord) -> RefreshResult:
        _require_lease(record)
        auth_header = self.context.credentials.auth_header()

        async with self.context.locked(record.record_id):
            # Read under the lock so a TTL change made meanwhile is kept
            lease = _require_lease(record)
            try:
                urls = await self.context.api.issue_short_urls(
                    auth_header,
                    lease.url_id,
                    lease.url_token,
                    lease.time_to_live,
                    self.context.config.URLS_PER_ISSUE,
                )
            except BeaconError as err:
                logger.warning(
                    "Short URL refresh failed for beacon %s: %s", record.record_id, err
                )
                record.mark_degraded()
                self.context.store.update(record, {"status"})
                raise

            short_url = urls.items[0]
            expire_at = 0
            if short_url.expire is not None:
                expire_at = int(short_url.expire.timestamp() * 1000)
            record.lease = lease.model_copy(
                update={"current_short_url": short_url.url, "expire_at": expire_at}
            )
            record.status = BeaconStatus.OK
            self.context.store.update(record, {"lease", "status"})
            logger.info(
                "Beacon %s now advertises %s (expires %s)",
                record.record_id,
                short_url.url,
                expire_at or "never",
            )

        token = None
        if record.has_rotation and record.server_id is not None:
            token = record.compute_token(max(self.context.clock.now(), record.epoch))
        return RefreshResult(short_url=short_url.url, expire_at=expire_at, token=token)


def _require_lease(record: BeaconRecord) -> Lease:
    lease = record.get_lease()
    if lease is None:
        msg = f"beacon {record.record_id} has no lease"
        raise ValueError(msg)
    return lease
