import asyncio

import pytest

from ephemurl.client.application.runner import (
    MIN_DELAY,
    AdvertisingRunner,
    current_url,
)
from ephemurl.client.client import BeaconClient
from ephemurl.client.domain.entities import EVENT_START_FAILED
from ephemurl.client.infrastructure.advertiser import LoggingAdvertiser
from ephemurl.common.models import BeaconRecord, BeaconState, Lease


def test_start_refreshes_missing_short_url(
    signed_in_client: BeaconClient, advertiser: LoggingAdvertiser
) -> None:
    record = signed_in_client.add_leased_beacon(20, "secret", time_to_live=600)

    started = asyncio.run(signed_in_client.runner.on_advertise_enabled(record))

    assert started
    lease = record.get_lease()
    assert lease is not None
    assert lease.current_short_url is not None
    assert advertiser.broadcasting[record.record_id] == lease.current_short_url


def test_start_skips_refresh_for_valid_lease(
    signed_in_client: BeaconClient, advertiser: LoggingAdvertiser
) -> None:
    record = signed_in_client.add_leased_beacon(21, "secret")
    record.lease = Lease(
        url_id=21, url_token="secret", current_short_url="http://u-c.info/kept"
    )

    assert asyncio.run(signed_in_client.runner.on_advertise_enabled(record))
    assert advertiser.broadcasting[record.record_id] == "http://u-c.info/kept"


def test_start_failure_is_reported(
    signed_in_client: BeaconClient, advertiser: LoggingAdvertiser
) -> None:
    owner = signed_in_client.add_leased_beacon(22, "right")
    asyncio.run(signed_in_client.refresh(owner))
    intruder = signed_in_client.add_leased_beacon(22, "wrong")
    errors: list[Exception] = []
    runner = AdvertisingRunner(signed_in_client.context, errors.append)

    started = asyncio.run(runner.on_advertise_enabled(intruder))

    assert not started
    assert intruder.record_id not in advertiser.broadcasting
    assert advertiser.errors == [
        (intruder.record_id, EVENT_START_FAILED, "403: invalid_url_token")
    ]
    assert len(errors) == 1


def test_rotating_beacon_advertises_token_url(signed_in_client: BeaconClient) -> None:
    record = asyncio.run(signed_in_client.register_beacon(10))
    token = signed_in_client.current_token(record)
    prefix = signed_in_client.context.config.URL_PREFIX
    assert current_url(signed_in_client.context, record) == f"{prefix}{token}"


def test_nothing_to_advertise(signed_in_client: BeaconClient) -> None:
    record = BeaconRecord(kind=0x10001)
    with pytest.raises(ValueError, match="nothing to advertise"):
        current_url(signed_in_client.context, record)


def test_next_event_is_token_rotation(signed_in_client: BeaconClient) -> None:
    record = asyncio.run(signed_in_client.register_beacon(4))
    delay = signed_in_client.runner.seconds_until_next_event(record)
    assert delay is not None
    assert 0 < delay <= 16  # noqa: PLR2004


def test_next_event_is_lease_refresh(signed_in_client: BeaconClient) -> None:
    record = signed_in_client.add_leased_beacon(23, "secret", time_to_live=60)
    assert signed_in_client.runner.seconds_until_next_event(record) is None

    asyncio.run(signed_in_client.refresh(record))

    delay = signed_in_client.runner.seconds_until_next_event(record)
    assert delay is not None
    assert 50 < delay <= 53  # noqa: PLR2004


def test_tick_advertises_active_beacons(
    signed_in_client: BeaconClient, advertiser: LoggingAdvertiser
) -> None:
    leased = signed_in_client.add_leased_beacon(24, "secret", time_to_live=60)
    idle = BeaconRecord(kind=0x10000, lease=Lease(url_id=25, url_token="secret"))
    signed_in_client.context.store.insert(idle)
    assert idle.state == BeaconState.UNREGISTERED

    delay = asyncio.run(signed_in_client.runner.tick())

    assert leased.record_id in advertiser.broadcasting
    assert idle.record_id not in advertiser.broadcasting
    assert MIN_DELAY <= delay <= 53  # noqa: PLR2004


def test_tick_without_beacons_idles(signed_in_client: BeaconClient) -> None:
    runner = AdvertisingRunner(signed_in_client.context, idle_delay=30)
    assert asyncio.run(runner.tick()) == 30  # noqa: PLR2004
