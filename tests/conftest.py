"""Shared pytest fixtures."""

import os
import tempfile
from pathlib import Path

_DB_PATH = Path(tempfile.gettempdir()) / f"socialnet-test-{os.getpid()}.db"

# settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from socialnet.client import SocialClient  # noqa: E402
from socialnet.db import Base, engine  # noqa: E402
from socialnet.main import app  # noqa: E402
from socialnet import models  # noqa: E402,F401

PASSWORD = "secret123"
TOKEN_HEADER_NAMES = ("access-token", "client", "uid")


@pytest_asyncio.fixture(autouse=True)
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def http():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api/v1") as client:
        yield client


class Actor:
    """A signed-in user driving the raw API, resending the newest token on each call."""

    def __init__(self, http: httpx.AsyncClient, user: dict, headers: dict):
        self.http = http
        self.user = user
        self.headers = headers

    @property
    def id(self) -> int:
        return self.user["id"]

    def absorb(self, resp: httpx.Response) -> None:
        if all(resp.headers.get(name) for name in TOKEN_HEADER_NAMES):
            self.headers = {name: resp.headers[name] for name in TOKEN_HEADER_NAMES}

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        resp = await self.http.request(method, url, headers=self.headers, **kwargs)
        self.absorb(resp)
        return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def patch(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)


async def register(http: httpx.AsyncClient, name: str) -> Actor:
    resp = await http.post(
        "/auth",
        json={
            "name": name,
            "email": f"{name.lower()}@example.com",
            "password": PASSWORD,
            "passwordConfirmation": PASSWORD,
        },
    )
    assert resp.status_code == 200, resp.text
    headers = {name: resp.headers[name] for name in TOKEN_HEADER_NAMES}
    return Actor(http, resp.json()["data"], headers)


@pytest.fixture
def make_actor(http):
    async def _make(name: str) -> Actor:
        return await register(http, name)

    return _make


@pytest_asyncio.fixture
async def alice(make_actor):
    return await make_actor("Alice")


@pytest_asyncio.fixture
async def bob(make_actor):
    return await make_actor("Bob")


@pytest_asyncio.fixture
async def carol(make_actor):
    return await make_actor("Carol")


@pytest_asyncio.fixture
async def api_client(http):
    """A SocialClient speaking to the app in-process."""
    client = SocialClient(http=http)
    yield client
    await client.aclose()
