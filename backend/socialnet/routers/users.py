import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..db import get_db
from ..errors import ValidationFailed
from ..models import Relationship, User
from ..policies import owned_relationship, target_user
from ..queries import list_followings, load_user_detail
from ..schemas import FollowingOut, RelationshipOut, UserBrief, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("/users", response_model=list[UserBrief])
async def index(db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(User).order_by(User.id))
    return res.scalars().all()


@router.get("/users/{id}", response_model=UserOut)
async def show(id: int, db: AsyncSession = Depends(get_db)):
    return await load_user_detail(db, id)


# ---------------------- RELATIONSHIPS ----------------------
async def _edge_exists(db: AsyncSession, user_id: int, follow_id: int) -> bool:
    res = await db.execute(
        select(Relationship.id).where(Relationship.user_id == user_id, Relationship.follow_id == follow_id)
    )
    return res.first() is not None


@router.post("/users/{id}/relationships", response_model=RelationshipOut)
async def follow(
    followee: User = Depends(target_user),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if followee.id == user.id:
        raise ValidationFailed.on("follow_id", "can't follow yourself")
    if await _edge_exists(db, user.id, followee.id):
        raise ValidationFailed.on("follow_id", "has already been taken")
    user_id, follow_id = user.id, followee.id
    rel = Relationship(user_id=user_id, follow_id=follow_id)
    db.add(rel)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Duplicate follow %s -> %s", user_id, follow_id, exc_info=True)
        raise ValidationFailed.on("follow_id", "has already been taken")
    logger.info("User %s followed user %s", rel.user_id, rel.follow_id)
    return rel


@router.get("/relationships", response_model=list[FollowingOut])
async def followings(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await list_followings(db, user.id)


@router.delete("/relationships/{id}", response_model=RelationshipOut)
async def unfollow(rel: Relationship = Depends(owned_relationship), db: AsyncSession = Depends(get_db)):
    out = RelationshipOut.model_validate(rel)
    await db.delete(rel)
    await db.commit()
    logger.info("User %s unfollowed user %s", out.user_id, out.follow_id)
    return out
