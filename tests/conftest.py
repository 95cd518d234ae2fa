import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from ephemurl.client.client import BeaconClient
from ephemurl.client.infrastructure.advertiser import LoggingAdvertiser
from ephemurl.client.transport import RequestsTransport
from ephemurl.common.config import Config
from ephemurl.server.core import BeaconService

AUTH_SECRET = "let-me-in"
BASE_URL = "http://testserver/"


class MockResponse:
    def __init__(self, status_code: int, content: bytes):
        self.status_code = status_code
        self.content = content

    @property
    def ok(self) -> bool:
        return self.status_code < 400  # noqa: PLR2004

    def json(self) -> Any:
        return json.loads(self.content)


class AppSession:
    """requests.Session stand-in that routes calls into a FastAPI TestClient."""

    def __init__(self, app_client: TestClient):
        self.app_client = app_client
        self.headers: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []

    def request(
        self,
        method: str,
        url: str,
        json: Any = None,  # noqa: A002
        headers: dict[str, str] | None = None,
        timeout: int | None = None,  # noqa: ARG002
    ) -> MockResponse:
        self.calls.append((method, url))
        response = self.app_client.request(method, url, json=json, headers=headers)
        return MockResponse(response.status_code, response.content)


@pytest.fixture
def service() -> BeaconService:
    config = Config()
    config.AUTH_SECRET = AUTH_SECRET
    return BeaconService(config=config)


@pytest.fixture
def app_client(service: BeaconService) -> TestClient:
    return TestClient(service.app)


@pytest.fixture
def session(app_client: TestClient) -> AppSession:
    return AppSession(app_client)


@pytest.fixture
def transport(session: AppSession) -> RequestsTransport:
    return RequestsTransport(BASE_URL, session=session)  # type: ignore[arg-type]


@pytest.fixture
def advertiser() -> LoggingAdvertiser:
    return LoggingAdvertiser()


@pytest.fixture
def client(
    tmp_path: Path, transport: RequestsTransport, advertiser: LoggingAdvertiser
) -> BeaconClient:
    return BeaconClient(transport=transport, advertiser=advertiser, data_dir=tmp_path)


@pytest.fixture
def signed_in_client(client: BeaconClient) -> BeaconClient:
    asyncio.run(client.sign_in(AUTH_SECRET))
    return client
