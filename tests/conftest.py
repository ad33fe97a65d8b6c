from pathlib import Path
import sys

import httpx
import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agenda.core.security import StaticCredentials  # noqa: E402
from agenda.session import AgendaSession  # noqa: E402
from tests.support import BASE_URL, ORG_ID, FakeBackend  # noqa: E402


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials("token-1")


@pytest_asyncio.fixture
async def session(backend, credentials):
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handle), base_url=BASE_URL)
    agenda = AgendaSession(credentials, client)
    await agenda.start(ORG_ID, poll=False)
    yield agenda
    await agenda.close()
    await client.aclose()
