import json
from pathlib import Path

import pytest

from ephemurl.client.infrastructure.persistence import JsonRecordStore
from ephemurl.common.models import BeaconRecord, BeaconState, BeaconStatus, Lease

KIND_LEASED_URL = 0x10000
KIND_ROTATING = 0x10001


def rotating_record() -> BeaconRecord:
    return BeaconRecord(
        kind=KIND_ROTATING,
        identity_key=bytes(range(32)),
        rotation_exponent=10,
        epoch=1_000_000,
        server_id="srv-1",
        state=BeaconState.ACTIVE,
    )


def leased_record() -> BeaconRecord:
    return BeaconRecord(
        kind=KIND_LEASED_URL,
        lease=Lease(url_id=7, url_token="secret", time_to_live=60),
        state=BeaconState.ACTIVE,
    )


def test_records_survive_reload(tmp_path: Path) -> None:
    path = tmp_path / "beacons.json"
    store = JsonRecordStore(path)
    record = rotating_record()
    store.insert(record)
    store.insert(leased_record())

    reloaded = JsonRecordStore(path)
    rotating = reloaded.query(KIND_ROTATING)
    assert len(rotating) == 1
    assert rotating[0] == record
    assert rotating[0].identity_key == bytes(range(32))
    assert len(reloaded.query()) == 2  # noqa: PLR2004


def test_records_grouped_by_kind_tag(tmp_path: Path) -> None:
    path = tmp_path / "beacons.json"
    store = JsonRecordStore(path)
    record = rotating_record()
    store.insert(record)

    data = json.loads(path.read_text())
    assert list(data) == [str(KIND_ROTATING)]
    assert record.record_id in data[str(KIND_ROTATING)]


def test_duplicate_insert_rejected(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "beacons.json")
    record = rotating_record()
    store.insert(record)
    with pytest.raises(KeyError):
        store.insert(record)


def test_update_writes_only_changed_fields(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "beacons.json")
    record = rotating_record()
    store.insert(record)

    record.tag = "not persisted"
    record.status = BeaconStatus.UPDATE_FAILED
    store.update(record, {"status"})

    (stored,) = store.query()
    assert stored.status == BeaconStatus.UPDATE_FAILED
    assert stored.tag is None


def test_update_missing_record(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "beacons.json")
    with pytest.raises(KeyError):
        store.update(rotating_record(), {"state"})


def test_query_returns_copies(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "beacons.json")
    store.insert(leased_record())

    (copy,) = store.query()
    copy.mark_degraded()

    (stored,) = store.query()
    assert stored.status == BeaconStatus.OK


def test_delete(tmp_path: Path) -> None:
    path = tmp_path / "beacons.json"
    store = JsonRecordStore(path)
    record = leased_record()
    store.insert(record)

    store.delete(record)
    store.delete(record)

    assert store.query() == []
    assert JsonRecordStore(path).query() == []


def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "beacons.json"
    path.write_text("{")
    assert JsonRecordStore(path).query() == []
