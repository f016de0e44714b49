"""Read-side loaders shared by the routers.

Everything a response schema touches is eager-loaded here, since the async
session cannot lazy-load attributes during serialization.
"""
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Entry, Message, Post, Relationship, Room, User, room_pair_key
from .schemas import MessageOut, RoomOut, UserBrief


def _post_query():
    return (
        select(Post)
        .options(selectinload(Post.user), selectinload(Post.likes))
        .execution_options(populate_existing=True)
    )


async def list_posts(db: AsyncSession) -> list[Post]:
    res = await db.execute(_post_query().order_by(Post.id.desc()))
    return list(res.scalars().all())


async def load_post(db: AsyncSession, post_id: int) -> Post:
    res = await db.execute(_post_query().where(Post.id == post_id))
    post = res.scalar_one_or_none()
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


async def load_user_detail(db: AsyncSession, user_id: int) -> User:
    res = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.followings), selectinload(User.followers))
        .execution_options(populate_existing=True)
    )
    user = res.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def list_followings(db: AsyncSession, user_id: int) -> list[Relationship]:
    res = await db.execute(
        select(Relationship)
        .where(Relationship.user_id == user_id)
        .options(selectinload(Relationship.follow))
        .order_by(Relationship.id)
    )
    return list(res.scalars().all())


async def find_room_between(db: AsyncSession, user_id: int, other_id: int) -> Room | None:
    res = await db.execute(select(Room).where(Room.pair_key == room_pair_key(user_id, other_id)))
    return res.scalar_one_or_none()


async def _rooms_with_members(db: AsyncSession, user_id: int, room_ids=None) -> list[Room]:
    q = (
        select(Room)
        .join(Entry, Entry.room_id == Room.id)
        .where(Entry.user_id == user_id)
        .options(selectinload(Room.entries).selectinload(Entry.user))
        .execution_options(populate_existing=True)
    )
    if room_ids is not None:
        q = q.where(Room.id.in_(room_ids))
    res = await db.execute(q)
    return list(res.scalars().unique().all())


async def _last_messages(db: AsyncSession, room_ids: list[int]) -> dict[int, Message]:
    if not room_ids:
        return {}
    latest = (
        select(func.max(Message.id))
        .where(Message.room_id.in_(room_ids))
        .group_by(Message.room_id)
    )
    res = await db.execute(select(Message).where(Message.id.in_(latest)))
    return {m.room_id: m for m in res.scalars().all()}


def other_member(room: Room, user_id: int) -> User:
    for entry in room.entries:
        if entry.user_id != user_id:
            return entry.user
    raise HTTPException(status_code=404, detail="Room has no other participant")


async def room_summaries(db: AsyncSession, user: User, room_ids=None) -> list[RoomOut]:
    """The acting user's rooms, most recently messaged first; silent rooms last, newest first."""
    rooms = await _rooms_with_members(db, user.id, room_ids)
    last = await _last_messages(db, [r.id for r in rooms])
    me = UserBrief.model_validate(user)
    out = [
        RoomOut(
            id=room.id,
            current_user=me,
            other_user=UserBrief.model_validate(other_member(room, user.id)),
            last_message=MessageOut.model_validate(last[room.id]) if room.id in last else None,
        )
        for room in rooms
    ]
    out.sort(
        key=lambda r: (r.last_message is not None, r.last_message.id if r.last_message else 0, r.id),
        reverse=True,
    )
    return out


async def room_messages(db: AsyncSession, room_id: int) -> list[Message]:
    res = await db.execute(select(Message).where(Message.room_id == room_id).order_by(Message.id))
    return list(res.scalars().all())
