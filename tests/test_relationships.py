"""Tests for following and unfollowing."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from socialnet.db import SessionLocal
from socialnet.models import Relationship
from socialnet.routers import users


async def _follow(actor, other):
    resp = await actor.post(f"/users/{other.id}/relationships")
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_follow_then_unfollow_scenario(alice, bob):
    edge = await _follow(alice, bob)
    assert edge["userId"] == alice.id
    assert edge["followId"] == bob.id

    followers = (await alice.get(f"/users/{bob.id}")).json()["followers"]
    assert alice.id in [u["id"] for u in followers]

    resp = await alice.delete(f"/relationships/{edge['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == edge["id"]

    followers = (await alice.get(f"/users/{bob.id}")).json()["followers"]
    assert alice.id not in [u["id"] for u in followers]


@pytest.mark.asyncio
async def test_double_follow_keeps_one_edge(alice, bob):
    await _follow(alice, bob)

    resp = await alice.post(f"/users/{bob.id}/relationships")

    assert resp.status_code == 422
    assert resp.json() == {"errors": {"follow_id": ["has already been taken"]}}
    assert len((await alice.get("/relationships")).json()) == 1


@pytest.mark.asyncio
async def test_cannot_follow_yourself(alice):
    resp = await alice.post(f"/users/{alice.id}/relationships")

    assert resp.status_code == 422
    assert resp.json() == {"errors": {"follow_id": ["can't follow yourself"]}}


@pytest.mark.asyncio
async def test_follow_unknown_user(alice):
    resp = await alice.post("/users/31337/relationships")

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_counts_match_edges(alice, bob, carol):
    await _follow(alice, bob)
    await _follow(carol, bob)
    await _follow(bob, alice)

    bob_view = (await alice.get(f"/users/{bob.id}")).json()
    assert len(bob_view["followers"]) == 2
    assert len(bob_view["followings"]) == 1
    assert bob_view["followings"][0]["id"] == alice.id

    carol_view = (await alice.get(f"/users/{carol.id}")).json()
    assert carol_view["followers"] == []
    assert [u["id"] for u in carol_view["followings"]] == [bob.id]


@pytest.mark.asyncio
async def test_relationships_index_lists_own_outbound_edges(alice, bob, carol):
    to_bob = await _follow(alice, bob)
    to_carol = await _follow(alice, carol)
    await _follow(bob, carol)

    edges = (await alice.get("/relationships")).json()

    assert [e["id"] for e in edges] == [to_bob["id"], to_carol["id"]]
    assert edges[0]["follow"]["name"] == "Bob"


@pytest.mark.asyncio
async def test_cannot_delete_someone_elses_edge(alice, bob, carol):
    edge = await _follow(bob, carol)

    resp = await alice.delete(f"/relationships/{edge['id']}")

    assert resp.status_code == 403
    assert len((await bob.get("/relationships")).json()) == 1


@pytest.mark.asyncio
async def test_delete_missing_edge_is_consistently_not_found(alice, bob):
    edge = await _follow(alice, bob)
    assert (await alice.delete(f"/relationships/{edge['id']}")).status_code == 200

    for _ in range(2):
        resp = await alice.delete(f"/relationships/{edge['id']}")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Relationship not found"}


@pytest.mark.asyncio
async def test_concurrent_duplicate_follow_caught_by_unique_constraint(alice, bob, monkeypatch):
    await _follow(alice, bob)
    monkeypatch.setattr(users, "_edge_exists", AsyncMock(return_value=False))

    resp = await alice.post(f"/users/{bob.id}/relationships")

    assert resp.status_code == 422
    assert resp.json() == {"errors": {"follow_id": ["has already been taken"]}}
    assert resp.headers["access-token"]
    assert len((await alice.get("/relationships")).json()) == 1


@pytest.mark.asyncio
async def test_database_rejects_self_edge(alice):
    async with SessionLocal() as db:
        db.add(Relationship(user_id=alice.id, follow_id=alice.id))
        with pytest.raises(IntegrityError):
            await db.commit()
