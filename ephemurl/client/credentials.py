"""
Bearer credential cache with expiry and safety margin.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ephemurl.client.domain.entities import AtomicCell
from ephemurl.client.infrastructure.persistence import DataPersistence
from ephemurl.common.exceptions import AuthExpired

if TYPE_CHECKING:
    from pathlib import Path

    from ephemurl.client.clock import ClockSync
    from ephemurl.common.models import CachedCredential

DEFAULT_MARGIN = 5

logger = logging.getLogger(__name__)


class CredentialCache:
    """Gate in front of the cached access credential.

    The cache never refreshes itself: when ``get`` returns None the caller
    authenticates and calls ``store``.
    """

    def __init__(
        self,
        clock: ClockSync,
        file_path: Path | None = None,
        margin_seconds: int = DEFAULT_MARGIN,
    ):
        self.clock = clock
        self.file_path = file_path
        self.margin_seconds = margin_seconds
        initial = DataPersistence.load_credential(file_path) if file_path else None
        self._credential: AtomicCell[CachedCredential | None] = AtomicCell(initial)

    def get(self) -> CachedCredential | None:
        """Return the credential unless it expires within the margin."""
        credential = self._credential.get()
        if credential is None:
            return None
        if credential.expire_at > self.clock.now() + self.margin_seconds:
            return credential
        return None

    def store(self, credential: CachedCredential) -> None:
        self._credential.set(credential)
        if self.file_path:
            DataPersistence.save_credential(self.file_path, credential)
        logger.debug("Stored credential expiring at %s", credential.expire_at)

    def clear(self) -> None:
        self._credential.set(None)
        if self.file_path:
            DataPersistence.clear_credential(self.file_path)
        logger.info("Credential cleared")

    def auth_header(self) -> str:
        """Authorization header value, or AuthExpired."""
        credential = self.get()
        if credential is None:
            raise AuthExpired
        return f"Bearer {credential.token}"
