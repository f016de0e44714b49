import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..db import get_db
from ..errors import ValidationFailed
from ..models import Entry, Message, Room, User, room_pair_key
from ..policies import member_room, target_user
from ..queries import find_room_between, room_messages, room_summaries
from ..schemas import MessageCreate, MessageOut, RoomDetail, RoomOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


@router.post("/users/{id}/rooms", response_model=RoomOut)
async def open_room(
    other: User = Depends(target_user),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if other.id == user.id:
        raise ValidationFailed.on("user_id", "can't open a room with yourself")
    user_id, other_id = user.id, other.id
    # one room per pair: opening again hands back the existing conversation
    room = await find_room_between(db, user_id, other_id)
    if room is None:
        room = Room(pair_key=room_pair_key(user_id, other_id))
        room.entries = [Entry(user_id=user_id), Entry(user_id=other_id)]
        db.add(room)
        try:
            await db.commit()
        except IntegrityError:
            # a concurrent open of the same pair got there first
            await db.rollback()
            logger.info("Room between users %s and %s already opened", user_id, other_id)
            await db.refresh(user)
            room = await find_room_between(db, user_id, other_id)
            if room is None:
                raise
        else:
            logger.info("Opened room %s between users %s and %s", room.id, user_id, other_id)
    summaries = await room_summaries(db, user, room_ids=[room.id])
    return summaries[0]


@router.get("/rooms", response_model=list[RoomOut])
async def index(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await room_summaries(db, user)


@router.get("/rooms/{id}", response_model=RoomDetail)
async def show(
    room: Room = Depends(member_room),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    summaries = await room_summaries(db, user, room_ids=[room.id])
    messages = await room_messages(db, room.id)
    return RoomDetail(
        id=room.id,
        other_user=summaries[0].other_user,
        messages=[MessageOut.model_validate(m) for m in messages],
    )


@router.post("/rooms/{id}/messages", response_model=MessageOut)
async def create_message(
    body: MessageCreate,
    room: Room = Depends(member_room),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = Message(room_id=room.id, user_id=user.id, content=body.content)
    db.add(message)
    await db.commit()
    logger.info("User %s posted message %s in room %s", user.id, message.id, room.id)
    return message
