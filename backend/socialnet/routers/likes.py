import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..db import get_db
from ..errors import ValidationFailed
from ..models import Like, Post, User
from ..schemas import LikeOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["likes"])

TAKEN = "has already been taken"


async def _find_like(db: AsyncSession, post_id: int, user_id: int) -> Like | None:
    res = await db.execute(select(Like).where(Like.post_id == post_id, Like.user_id == user_id))
    return res.scalar_one_or_none()


@router.post("/posts/{id}/likes", response_model=LikeOut)
async def create(id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    if await db.get(Post, id) is None:
        raise HTTPException(status_code=404, detail="Post not found")
    if await _find_like(db, id, user.id) is not None:
        raise ValidationFailed.on("post_id", TAKEN)
    user_id = user.id
    like = Like(post_id=id, user_id=user_id)
    db.add(like)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent like of the same pair
        await db.rollback()
        logger.warning("Duplicate like on post %s by user %s", id, user_id, exc_info=True)
        raise ValidationFailed.on("post_id", TAKEN)
    logger.info("User %s liked post %s", user_id, id)
    return like


# keyed by the post id: a user holds at most one like per post
@router.delete("/likes/{id}", response_model=LikeOut)
async def destroy(id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    like = await _find_like(db, id, user.id)
    if like is None:
        raise HTTPException(status_code=404, detail="Like not found")
    out = LikeOut.model_validate(like)
    await db.delete(like)
    await db.commit()
    logger.info("User %s unliked post %s", user.id, id)
    return out
