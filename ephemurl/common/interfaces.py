"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from typing import Any, Protocol

from ephemurl.common.models import BeaconRecord


class ITransport(Protocol):
    """Asynchronous JSON request/response transport.

    Resolves with the decoded JSON body, or raises ``NetworkFailure`` /
    ``ServerRejected``. Never both, never neither.
    """

    async def request(
        self,
        method: str,
        path: str,
        auth_header: str | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any: ...


class IRecordStore(Protocol):
    """Key/value record store, keyed by a kind tag."""

    def insert(self, record: BeaconRecord) -> None: ...

    def update(self, record: BeaconRecord, changed_fields: set[str]) -> None: ...

    def delete(self, record: BeaconRecord) -> None: ...

    def query(self, kind: int | None = None) -> list[BeaconRecord]: ...


class IAdvertiser(Protocol):
    """Radio advertising layer."""

    def start_advertising(
        self, record: BeaconRecord, url: str, token: str | None = None
    ) -> None: ...

    def report_error(self, record: BeaconRecord, event: str, message: str) -> None: ...
