import asyncio
import threading
import time

import pytest

from ephemurl.client.client import BeaconClient
from ephemurl.common.exceptions import AuthExpired, ServerRejected
from ephemurl.common.models import BeaconStatus, Lease
from ephemurl.server.core import BeaconService

HTTP_FORBIDDEN = 403
MARGIN = 7_000


def test_refresh_issues_short_url(
    signed_in_client: BeaconClient, service: BeaconService
) -> None:
    record = signed_in_client.add_leased_beacon(7, "secret", time_to_live=60)

    result = asyncio.run(signed_in_client.refresh(record))

    assert result.short_url.startswith(signed_in_client.context.config.URL_PREFIX)
    assert result.short_url in service.registry.url_resources[7].issued
    assert abs(result.expire_at - (time.time() + 60) * 1000) < 5_000  # noqa: PLR2004
    assert result.token is None

    (stored,) = signed_in_client.beacons()
    assert stored.status == BeaconStatus.OK
    lease = stored.get_lease()
    assert lease is not None
    assert lease.current_short_url == result.short_url
    assert lease.expire_at == result.expire_at


def test_refresh_without_ttl_never_expires(signed_in_client: BeaconClient) -> None:
    record = signed_in_client.add_leased_beacon(8, "secret")
    result = asyncio.run(signed_in_client.refresh(record))
    assert result.expire_at == 0


def test_rejected_refresh_marks_record_degraded(
    signed_in_client: BeaconClient,
) -> None:
    owner = signed_in_client.add_leased_beacon(9, "right")
    asyncio.run(signed_in_client.refresh(owner))
    intruder = signed_in_client.add_leased_beacon(9, "wrong")

    with pytest.raises(ServerRejected) as exc_info:
        asyncio.run(signed_in_client.refresh(intruder))

    assert exc_info.value.status_code == HTTP_FORBIDDEN
    assert exc_info.value.message == "invalid_url_token"
    stored = signed_in_client.get_beacon(intruder.record_id)
    assert stored is not None
    assert stored.status == BeaconStatus.UPDATE_FAILED
    lease = stored.get_lease()
    assert lease is not None
    assert lease.current_short_url is None


def test_successful_refresh_clears_degraded_status(
    signed_in_client: BeaconClient,
) -> None:
    record = signed_in_client.add_leased_beacon(10, "secret")
    record.mark_degraded()
    signed_in_client.context.store.update(record, {"status"})

    asyncio.run(signed_in_client.refresh(record))

    stored = signed_in_client.get_beacon(record.record_id)
    assert stored is not None
    assert stored.status == BeaconStatus.OK


def test_refresh_requires_credential(client: BeaconClient) -> None:
    record = client.add_leased_beacon(7, "secret")
    with pytest.raises(AuthExpired):
        asyncio.run(client.refresh(record))
    stored = client.get_beacon(record.record_id)
    assert stored is not None
    assert stored.status == BeaconStatus.OK


def test_refresh_needs_a_lease(signed_in_client: BeaconClient) -> None:
    record = asyncio.run(signed_in_client.register_beacon(10))
    with pytest.raises(ValueError, match="no lease"):
        asyncio.run(signed_in_client.refresh(record))


def test_refresh_returns_current_token_for_rotating_beacon(
    signed_in_client: BeaconClient,
) -> None:
    record = asyncio.run(signed_in_client.register_beacon(10))
    record.lease = Lease(url_id=11, url_token="secret")
    signed_in_client.context.store.update(record, {"lease"})

    result = asyncio.run(signed_in_client.refresh(record))

    now = max(signed_in_client.context.clock.now(), record.epoch)
    assert result.token == record.compute_token(now)


def test_concurrent_refreshes_of_one_record(
    signed_in_client: BeaconClient, service: BeaconService
) -> None:
    record = signed_in_client.add_leased_beacon(12, "secret")

    async def refresh_twice() -> list[str]:
        results = await asyncio.gather(
            signed_in_client.refresh(record), signed_in_client.refresh(record)
        )
        return [result.short_url for result in results]

    urls = asyncio.run(refresh_twice())

    assert sorted(urls) == sorted(service.registry.url_resources[12].issued)
    stored = signed_in_client.get_beacon(record.record_id)
    assert stored is not None
    lease = stored.get_lease()
    assert lease is not None
    assert lease.current_short_url == urls[-1]


def test_change_ttl_drops_current_short_url(signed_in_client: BeaconClient) -> None:
    record = signed_in_client.add_leased_beacon(13, "secret", time_to_live=60)
    asyncio.run(signed_in_client.refresh(record))

    asyncio.run(signed_in_client.lease_refresh.change_ttl(record, 120))

    stored = signed_in_client.get_beacon(record.record_id)
    assert stored is not None
    lease = stored.get_lease()
    assert lease is not None
    assert lease.time_to_live == 120  # noqa: PLR2004
    assert lease.current_short_url is None
    assert lease.expire_at == 0


def test_record_locks_are_per_record(signed_in_client: BeaconClient) -> None:
    context = signed_in_client.context
    assert context.record_lock("a") is context.record_lock("a")
    assert context.record_lock("a") is not context.record_lock("b")


def test_contended_record_across_event_loops(
    signed_in_client: BeaconClient, service: BeaconService
) -> None:
    record = signed_in_client.add_leased_beacon(14, "secret")

    async def refresh_twice() -> None:
        await asyncio.gather(
            signed_in_client.refresh(record), signed_in_client.refresh(record)
        )

    asyncio.run(refresh_twice())
    asyncio.run(refresh_twice())

    assert len(service.registry.url_resources[14].issued) == 4  # noqa: PLR2004
    assert not signed_in_client.context.record_lock(record.record_id).locked()


def test_record_lock_excludes_other_threads(signed_in_client: BeaconClient) -> None:
    record = signed_in_client.add_leased_beacon(15, "secret")
    lock = signed_in_client.context.record_lock(record.record_id)
    results: list[str] = []

    def refresh_in_thread() -> None:
        result = asyncio.run(signed_in_client.refresh(record))
        results.append(result.short_url)

    with lock:
        worker = threading.Thread(target=refresh_in_thread)
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert results == []

    worker.join(timeout=10)
    assert not worker.is_alive()
    assert len(results) == 1


def test_ttl_change_survives_queued_refresh(signed_in_client: BeaconClient) -> None:
    record = signed_in_client.add_leased_beacon(16, "secret", time_to_live=60)

    async def interleave() -> None:
        await asyncio.gather(
            signed_in_client.refresh(record),
            signed_in_client.lease_refresh.change_ttl(record, 120),
            signed_in_client.refresh(record),
        )

    asyncio.run(interleave())

    stored = signed_in_client.get_beacon(record.record_id)
    assert stored is not None
    lease = stored.get_lease()
    assert lease is not None
    assert lease.time_to_live == 120  # noqa: PLR2004


def test_lease_refresh_due() -> None:
    now = 1_000_000
    assert Lease(url_id=1, url_token="t").is_refresh_due(now, MARGIN)
    issued = Lease(url_id=1, url_token="t", current_short_url="http://u-c.info/x")
    assert not issued.is_refresh_due(now, MARGIN)
    expiring = issued.model_copy(update={"expire_at": now + MARGIN - 1})
    assert expiring.is_refresh_due(now, MARGIN)
    fresh = issued.model_copy(update={"expire_at": now + MARGIN + 1})
    assert not fresh.is_refresh_due(now, MARGIN)
    assert fresh.scheduled_refresh_time(MARGIN) == now + 1
