"""Tests for settings and health."""

import pytest

from socialnet.config import Settings


def test_cors_origins_split_and_trimmed():
    s = Settings(database_url="sqlite+aiosqlite://", jwt_secret_key="x", cors_origins="http://a.test, http://b.test,")

    assert s.cors_origin_list == ["http://a.test", "http://b.test"]


def test_defaults():
    s = Settings(database_url="sqlite+aiosqlite://", jwt_secret_key="x")

    assert s.jwt_algorithm == "HS256"
    assert s.token_lifespan_minutes == 60 * 24 * 14
    assert s.max_clients_per_user == 10


@pytest.mark.asyncio
async def test_health(http):
    resp = await http.get("http://test/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
