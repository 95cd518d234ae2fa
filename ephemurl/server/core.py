"""
Reference beacon service using FastAPI.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Any, cast

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from ephemurl.common.config import Config
from ephemurl.common.crypto import b64u_encode
from ephemurl.common.exceptions import BeaconError
from ephemurl.common.logging_utils import setup_logger
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

from .registry import BeaconRegistry, RegisteredBeacon

HTTP_UNAUTHORIZED = 401


class BeaconService:
    """Service side of the provisioning protocol, kept in memory."""

    def __init__(
        self,
        config: Config | None = None,
        registry: BeaconRegistry | None = None,
    ):
        self.config = config or Config()
        self.logger = logging.getLogger(__name__)
        setup_logger(self.logger, self.config.LOG_LEVEL)

        self.auth_secret = self.config.AUTH_SECRET
        self.access_token_ttl = self.config.ACCESS_TOKEN_TTL
        self.server_host = self.config.SERVER_HOST
        self.server_port = self.config.SERVER_PORT
        self.registry = registry or BeaconRegistry(self.config.URL_PREFIX)
        self.access_tokens: dict[str, float] = {}
        self._tokens_lock = threading.Lock()

        self.app = FastAPI()
        self._setup_routes()

        self.logger.info(
            "Service configured on http://%s:%s", self.server_host, self.server_port
        )

    def _setup_routes(self) -> None:
        """Setup API routes."""
        self.app.exception_handler(BeaconError)(self._error_response)

        @self.app.get("/health")
        def health() -> dict[str, Any]:
            return {"status": "ok", "timestamp": int(time.time())}

        self.app.post("/auth")(self.authenticate)
        self.app.get("/clock")(self.clock)
        self.app.get("/params")(self.params)
        self.app.post("/beacons")(self.register_beacon)
        self.app.get("/beacons/{beacon_id}")(self.get_beacon)
        self.app.get("/eid/{token}")(self.check_token)
        self.app.post("/urls/{url_id}/issue")(self.issue_urls)

    @staticmethod
    async def _error_response(request: Request, exc: Exception) -> JSONResponse:
        error = cast("BeaconError", exc)
        return JSONResponse(
            status_code=error.status_code or 400,
            content={"error": {"message": error.message}},
        )

    @staticmethod
    def _beacon_body(beacon: RegisteredBeacon) -> dict[str, Any]:
        return BeaconResponse(
            id=beacon.id,
            epoch=beacon.epoch_micros,
            active=beacon.active,
            tag=beacon.tag,
        ).model_dump()

    def _require_auth(self, authorization: str | None) -> None:
        """Validate a bearer access token."""
        scheme, _, token = (authorization or "").partition(" ")
        if scheme != "Bearer" or not token:
            raise BeaconError("unauthorized", HTTP_UNAUTHORIZED)
        now = time.time()
        with self._tokens_lock:
            expires = self.access_tokens.get(token)
            for stale in [t for t, at in self.access_tokens.items() if at < now]:
                del self.access_tokens[stale]
        if expires is None or expires < now:
            raise BeaconError("access_token_expired", HTTP_UNAUTHORIZED)

    async def authenticate(self, req: AuthRequest) -> dict[str, Any]:
        """Handle /auth endpoint."""
        if self.auth_secret is not None and not secrets.compare_digest(
            req.assertion, self.auth_secret
        ):
            raise BeaconError("invalid_assertion", HTTP_UNAUTHORIZED)
        token = secrets.token_urlsafe(24)
        with self._tokens_lock:
            self.access_tokens[token] = time.time() + self.access_token_ttl
        return AccessTokenResponse(
            access_token=token, expires_in=self.access_token_ttl
        ).model_dump()

    async def clock(self) -> dict[str, Any]:
        """Handle /clock endpoint."""
        return ClockResponse(time=int(time.time() * 1000)).model_dump()

    async def params(self, authorization: str | None = Header(None)) -> dict[str, Any]:
        """Handle /params endpoint."""
        self._require_auth(authorization)
        public_key = self.registry.issue_service_key()
        return RegistrationParams(
            service_public_key=b64u_encode(public_key)
        ).model_dump(by_alias=True)

    async def register_beacon(
        self,
        req: RegisterBeaconRequest,
        authorization: str | None = Header(None),
    ) -> dict[str, Any]:
        """Handle /beacons endpoint."""
        self._require_auth(authorization)
        return self._beacon_body(self.registry.register(req))

    async def get_beacon(
        self, beacon_id: str, authorization: str | None = Header(None)
    ) -> dict[str, Any]:
        """Handle /beacons/{id} endpoint."""
        self._require_auth(authorization)
        return self._beacon_body(self.registry.get(beacon_id))

    async def check_token(
        self, token: str, authorization: str | None = Header(None)
    ) -> dict[str, Any]:
        """Handle /eid/{token} endpoint."""
        self._require_auth(authorization)
        beacon, valid_since, valid_until = self.registry.resolve(token)
        return TokenInfo(
            beacon=beacon.id, valid_since=valid_since, valid_until=valid_until
        ).model_dump(mode="json", by_alias=True)

    async def issue_urls(
        self,
        url_id: int,
        req: IssueUrlsRequest,
        authorization: str | None = Header(None),
    ) -> dict[str, Any]:
        """Handle /urls/{id}/issue endpoint."""
        self._require_auth(authorization)
        items = self.registry.issue_urls(url_id, req.token, req.ttl, req.count)
        return ShortUrls(items=items).model_dump(mode="json")
