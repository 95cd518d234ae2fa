"""
HTTP transport for the beacon service.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urljoin

import requests
from pydantic import ValidationError

from ephemurl.common.exceptions import NetworkFailure, ServerRejected
from ephemurl.common.models import ErrorBody

logger = logging.getLogger(__name__)


def extract_error(status_code: int, payload: Any) -> ServerRejected:
    """Build a ServerRejected from an error response body."""
    message = None
    if isinstance(payload, dict):
        try:
            body = ErrorBody.model_validate(payload)
        except ValidationError:
            body = ErrorBody()
        if body.error is not None:
            message = body.error.message
    return ServerRejected(status_code, message)


class RequestsTransport:
    """JSON transport over requests, run off the event loop."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        user_agent: str | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    async def request(
        self,
        method: str,
        path: str,
        auth_header: str | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        return await asyncio.to_thread(self._send, method, path, auth_header, body)

    def _send(
        self,
        method: str,
        path: str,
        auth_header: str | None,
        body: dict[str, Any] | None,
    ) -> Any:
        url = urljoin(self.base_url, path)
        headers = {"Authorization": auth_header} if auth_header else {}
        logger.debug("%s %s", method, url)
        try:
            r = self.session.request(
                method, url, json=body, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as err:
            raise NetworkFailure(str(err)) from err

        try:
            payload = r.json()
        except ValueError:
            payload = None

        if not r.ok:
            raise extract_error(r.status_code, payload)
        if payload is None:
            raise ServerRejected(r.status_code, "Invalid response")
        return payload
