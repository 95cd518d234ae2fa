"""
Configuration settings for the beacon provisioning system.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Service endpoint
        self.SERVICE_URL: str = os.getenv(
            "EPHEMURL_SERVICE_URL", "https://api.uriio.com/v2/"
        )
        self.REQUEST_TIMEOUT: int = 10  # Seconds, enforced by the transport only
        self.USER_AGENT: str = "ephemurl/0.1"

        # Credential cache
        self.CREDENTIAL_MARGIN: int = 5  # Seconds before expiry a credential is refused

        # Lease refresh
        self.LEASE_REFRESH_MARGIN_MS: int = 7 * 1000  # Refresh 7s before server timeout
        self.URLS_PER_ISSUE: int = 1

        # Token rotation
        self.DEFAULT_ROTATION_EXPONENT: int = 10  # 1024 seconds
        self.URL_PREFIX: str = "http://u-c.info/"

        # Record kinds
        self.KIND_LEASED_URL: int = 0x10000
        self.KIND_ROTATING: int = 0x10001

        # Server settings (reference service)
        self.AUTH_SECRET: str | None = os.getenv("EPHEMURL_AUTH_SECRET")
        self.ACCESS_TOKEN_TTL: int = 3600
        self.SERVER_HOST: str = os.getenv("EPHEMURL_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("EPHEMURL_SERVER_PORT", "8000"))

        # Client data directory
        self.DATA_DIR: Path = Path(
            os.getenv("EPHEMURL_DATA_DIR", str(Path.home() / ".ephemurl"))
        )

        # Logging
        self.LOG_LEVEL: int = logging.INFO
