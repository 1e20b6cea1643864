"""Pytest configuration - loads .env and provides local CloudAPI fixtures."""

import random
from pathlib import Path

import pytest
from dotenv import load_dotenv

from sdc_cli.core.auth import Credentials
from sdc_cli.localservices import FakeCloudAPI, FakeCloudAPIServer, FakeTransport
from sdc_cli.sdk import CloudAPIClient

# Load .env from project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


@pytest.fixture
def fake() -> FakeCloudAPI:
    """A fresh in-memory CloudAPI with a seeded random source."""
    return FakeCloudAPI(user_account="test", rng=random.Random(7))


@pytest.fixture
def transport(fake: FakeCloudAPI) -> FakeTransport:
    return FakeTransport(fake)


@pytest.fixture
def client(transport: FakeTransport) -> CloudAPIClient:
    """A CloudAPIClient served in-process by the fake."""
    return CloudAPIClient(base_url="http://localhost:8080", credentials=Credentials(), transport=transport)


@pytest.fixture
def server(fake: FakeCloudAPI):
    """The fake served over HTTP on an ephemeral port."""
    with FakeCloudAPIServer(service=fake) as srv:
        yield srv


@pytest.fixture
def http_client(server: FakeCloudAPIServer) -> CloudAPIClient:
    """A CloudAPIClient talking to the fake over real HTTP."""
    return CloudAPIClient(base_url=server.url, credentials=Credentials(), timeout=5)
