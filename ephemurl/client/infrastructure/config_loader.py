"""Infrastructure layer: Configuration loading and context assembly.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ephemurl.client.api import BeaconApi
from ephemurl.client.clock import ClockSync
from ephemurl.client.context import BeaconContext
from ephemurl.client.credentials import CredentialCache
from ephemurl.client.infrastructure.advertiser import LoggingAdvertiser
from ephemurl.client.infrastructure.persistence import JsonRecordStore
from ephemurl.client.transport import RequestsTransport
from ephemurl.common import Configurable, setup_logger
from ephemurl.common.config import Config

if TYPE_CHECKING:
    from ephemurl.common.interfaces import IAdvertiser, ITransport
    from ephemurl.common.models import ClientConfig

CLIENT_SETTINGS = [
    "service_url",
    "log_level",
    "request_timeout",
    "credential_margin",
    "lease_refresh_margin_ms",
    "url_prefix",
    "data_dir",
]


class ConfigLoader(Configurable):
    """Resolves client settings against Config defaults and builds a context."""

    service_url: str
    log_level: int
    request_timeout: int
    credential_margin: int
    lease_refresh_margin_ms: int
    url_prefix: str
    data_dir: Path

    def __init__(self, client_config: ClientConfig):
        self.config: Config = Config()
        self.apply_overrides(client_config.model_dump(), self.config, CLIENT_SETTINGS)

        # Paths follow data_dir unless given explicitly
        self.data_dir = Path(self.data_dir)
        self.credential_file_path = (
            client_config.credential_file_path or self.data_dir / "credential.json"
        )
        self.records_file_path = (
            client_config.records_file_path or self.data_dir / "beacons.json"
        )

        # Flows read protocol settings from the config object
        self.config.SERVICE_URL = self.service_url
        self.config.LEASE_REFRESH_MARGIN_MS = self.lease_refresh_margin_ms
        self.config.URL_PREFIX = self.url_prefix

        # Setup logging
        self.logger = logging.getLogger("ephemurl")
        setup_logger(self.logger, self.log_level)

    def build_context(
        self,
        transport: ITransport | None = None,
        advertiser: IAdvertiser | None = None,
    ) -> BeaconContext:
        """Assemble a context with file-backed persistence."""
        if transport is None:
            transport = RequestsTransport(
                self.service_url, self.request_timeout, self.config.USER_AGENT
            )
        clock = ClockSync()
        return BeaconContext(
            config=self.config,
            api=BeaconApi(transport),
            store=JsonRecordStore(self.records_file_path),
            clock=clock,
            credentials=CredentialCache(
                clock, self.credential_file_path, self.credential_margin
            ),
            advertiser=advertiser or LoggingAdvertiser(),
        )
