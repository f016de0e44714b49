"""Tests for direct-message rooms."""

import pytest

from socialnet.models import room_pair_key
from socialnet.routers import rooms


async def _open(actor, other):
    resp = await actor.post(f"/users/{other.id}/rooms")
    assert resp.status_code == 200, resp.text
    return resp.json()


async def _say(actor, room_id, content):
    resp = await actor.post(f"/rooms/{room_id}/messages", json={"content": content})
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_open_room_summary(alice, bob):
    room = await _open(alice, bob)

    assert room["currentUser"]["id"] == alice.id
    assert room["otherUser"]["id"] == bob.id
    assert room["lastMessage"] is None


@pytest.mark.asyncio
async def test_opening_twice_returns_the_same_room(alice, bob):
    first = await _open(alice, bob)
    again = await _open(bob, alice)

    assert again["id"] == first["id"]
    assert again["otherUser"]["id"] == alice.id
    assert len((await alice.get("/rooms")).json()) == 1


@pytest.mark.asyncio
async def test_losing_a_concurrent_first_open_returns_the_winning_room(alice, bob, monkeypatch):
    first = await _open(alice, bob)
    lookup = rooms.find_room_between
    calls = []

    async def missed_then_found(db, user_id, other_id):
        calls.append((user_id, other_id))
        # the first lookup ran before the other request committed
        if len(calls) == 1:
            return None
        return await lookup(db, user_id, other_id)

    monkeypatch.setattr(rooms, "find_room_between", missed_then_found)

    again = await _open(bob, alice)

    assert again["id"] == first["id"]
    assert len(calls) == 2
    assert len((await alice.get("/rooms")).json()) == 1


def test_pair_key_ignores_order():
    assert room_pair_key(7, 3) == room_pair_key(3, 7) == "3:7"


@pytest.mark.asyncio
async def test_cannot_open_room_with_yourself(alice):
    resp = await alice.post(f"/users/{alice.id}/rooms")

    assert resp.status_code == 422
    assert "user_id" in resp.json()["errors"]


@pytest.mark.asyncio
async def test_message_scenario(alice, bob):
    room = await _open(alice, bob)
    await _say(bob, room["id"], "hey")

    sent = await _say(alice, room["id"], "hi")
    assert sent["userId"] == alice.id
    assert sent["roomId"] == room["id"]

    detail = (await bob.get(f"/rooms/{room['id']}")).json()
    assert detail["otherUser"]["id"] == alice.id
    assert [m["content"] for m in detail["messages"]] == ["hey", "hi"]
    assert detail["messages"][-1]["userId"] == alice.id


@pytest.mark.asyncio
async def test_last_message_is_most_recent(alice, bob):
    room = await _open(alice, bob)
    for text in ("one", "two", "three"):
        last = await _say(alice, room["id"], text)

    rooms = (await bob.get("/rooms")).json()

    assert rooms[0]["lastMessage"]["id"] == last["id"]
    assert rooms[0]["lastMessage"]["content"] == "three"


@pytest.mark.asyncio
async def test_rooms_sorted_by_latest_message(alice, bob, carol, make_actor):
    dave = await make_actor("Dave")
    with_bob = await _open(alice, bob)
    with_carol = await _open(alice, carol)
    silent = await _open(alice, dave)

    await _say(alice, with_carol["id"], "first")
    await _say(bob, with_bob["id"], "second")

    order = [r["id"] for r in (await alice.get("/rooms")).json()]

    assert order == [with_bob["id"], with_carol["id"], silent["id"]]


@pytest.mark.asyncio
async def test_non_member_cannot_read_or_write(alice, bob, carol):
    room = await _open(alice, bob)

    assert (await carol.get(f"/rooms/{room['id']}")).status_code == 403
    resp = await carol.post(f"/rooms/{room['id']}/messages", json={"content": "sneaky"})
    assert resp.status_code == 403

    detail = (await alice.get(f"/rooms/{room['id']}")).json()
    assert detail["messages"] == []


@pytest.mark.asyncio
async def test_missing_room(alice):
    assert (await alice.get("/rooms/777")).status_code == 404


@pytest.mark.asyncio
async def test_empty_message_rejected(alice, bob):
    room = await _open(alice, bob)

    resp = await alice.post(f"/rooms/{room['id']}/messages", json={"content": ""})

    assert resp.status_code == 422
    assert "content" in resp.json()["errors"]
