"""Ownership and membership checks, expressed as FastAPI dependencies.

Handlers never load a guarded resource themselves; they declare one of these
and receive the resource only once the acting user is allowed to touch it.
"""
import logging

from fastapi import Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_user
from .db import get_db
from .models import Entry, Post, Relationship, Room, User

logger = logging.getLogger(__name__)


def _deny(user: User, what: str, ident: int) -> HTTPException:
    logger.warning("User %s denied access to %s %s", user.id, what, ident)
    return HTTPException(status_code=403, detail=f"You are not allowed to access this {what}")


async def target_user(id: int, db: AsyncSession = Depends(get_db)) -> User:
    user = await db.get(User, id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def owned_post(
    id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> Post:
    post = await db.get(Post, id)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    if post.user_id != user.id:
        raise _deny(user, "post", id)
    return post


async def owned_relationship(
    id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> Relationship:
    rel = await db.get(Relationship, id)
    if rel is None:
        raise HTTPException(status_code=404, detail="Relationship not found")
    if rel.user_id != user.id:
        raise _deny(user, "relationship", id)
    return rel


async def is_member(db: AsyncSession, room_id: int, user_id: int) -> bool:
    res = await db.execute(select(Entry.id).where(Entry.room_id == room_id, Entry.user_id == user_id))
    return res.first() is not None


async def member_room(
    id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> Room:
    room = await db.get(Room, id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    if not await is_member(db, room.id, user.id):
        raise _deny(user, "room", id)
    return room
