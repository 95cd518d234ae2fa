"""
Typed wrapper around the beacon service REST API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from ephemurl.common.crypto import b64u_decode
from ephemurl.common.exceptions import InvalidKey, ServerRejected
from ephemurl.common.models import (
    AccessTokenResponse,
    AuthRequest,
    BeaconResponse,
    ClockResponse,
    IssueUrlsRequest,
    RegisterBeaconRequest,
    RegistrationParams,
    ShortUrls,
    TokenInfo,
)

if TYPE_CHECKING:
    from ephemurl.common.interfaces import ITransport

HTTP_OK = 200

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], payload: Any) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as err:
        msg = f"unexpected {model.__name__} response: {err.error_count()} errors"
        raise ServerRejected(HTTP_OK, msg) from err


class BeaconApi:
    """Service endpoints used by the registration and refresh flows."""

    def __init__(self, transport: ITransport):
        self.transport = transport

    async def authenticate(self, assertion: str) -> AccessTokenResponse:
        payload = await self.transport.request(
            "POST", "auth", body=AuthRequest(assertion=assertion).model_dump()
        )
        return _parse(AccessTokenResponse, payload)

    async def get_server_time(self) -> int:
        """Service clock in epoch millis."""
        payload = await self.transport.request("GET", "clock")
        return _parse(ClockResponse, payload).time

    async def get_registration_params(self, auth_header: str) -> bytes:
        """Fresh service ECDH public key."""
        payload = await self.transport.request("GET", "params", auth_header)
        params = _parse(RegistrationParams, payload)
        try:
            return b64u_decode(params.service_public_key)
        except ValueError as err:
            msg = "service public key is not valid base64"
            raise InvalidKey(msg) from err

    async def register_beacon(
        self, auth_header: str, registration: RegisterBeaconRequest
    ) -> BeaconResponse:
        payload = await self.transport.request(
            "POST",
            "beacons",
            auth_header,
            registration.model_dump(by_alias=True, exclude_none=True),
        )
        return _parse(BeaconResponse, payload)

    async def get_beacon(self, auth_header: str, beacon_id: str) -> BeaconResponse:
        payload = await self.transport.request(
            "GET", f"beacons/{beacon_id}", auth_header
        )
        return _parse(BeaconResponse, payload)

    async def issue_short_urls(  # noqa: PLR0913
        self,
        auth_header: str,
        url_id: int,
        url_token: str,
        ttl: int,
        count: int = 1,
    ) -> ShortUrls:
        body = IssueUrlsRequest(token=url_token, ttl=ttl, count=count)
        payload = await self.transport.request(
            "POST", f"urls/{url_id}/issue", auth_header, body.model_dump()
        )
        urls = _parse(ShortUrls, payload)
        if not urls.items:
            msg = "no short URL issued"
            raise ServerRejected(HTTP_OK, msg)
        return urls

    async def check_token(self, auth_header: str, token: str) -> TokenInfo:
        payload = await self.transport.request("GET", f"eid/{token}", auth_header)
        return _parse(TokenInfo, payload)
