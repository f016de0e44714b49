import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import (
    INVALID_CREDENTIALS,
    AuthSession,
    attach_token,
    current_session,
    detach_token,
    get_password_hash,
    issue_token,
    optional_session,
    revoke_token,
    sign_token,
    verify_password,
)
from ..db import get_db
from ..errors import ValidationFailed
from ..models import Entry, Room, User
from ..queries import load_user_detail
from ..schemas import (
    AuthOut,
    LoginIn,
    RegistrationOut,
    SessionOut,
    Success,
    UserBrief,
    UserCreate,
    UserOut,
    UserUpdate,
    ValidateTokenOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

EMAIL_TAKEN = "has already been taken"


async def _email_taken(db: AsyncSession, email: str) -> bool:
    res = await db.execute(select(User.id).where(User.email == email))
    return res.first() is not None


@router.post("", response_model=RegistrationOut)
async def register(payload: UserCreate, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    email = payload.email.lower()
    if await _email_taken(db, email):
        raise ValidationFailed.on("email", EMAIL_TAKEN)
    user = User(name=payload.name, email=email, password_hash=get_password_hash(payload.password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationFailed.on("email", EMAIL_TAKEN)
    logger.info("Registered user %s", user.id)
    attach_token(request, response, await issue_token(db, user))
    return RegistrationOut(data=UserBrief.model_validate(user))


@router.patch("", response_model=RegistrationOut)
async def update_account(
    payload: UserUpdate,
    request: Request,
    response: Response,
    session: AuthSession = Depends(current_session),
    db: AsyncSession = Depends(get_db),
):
    user = session.user
    if payload.email is not None:
        email = payload.email.lower()
        if email != user.email and await _email_taken(db, email):
            raise ValidationFailed.on("email", EMAIL_TAKEN)
        user.email = email
    if payload.name is not None:
        user.name = payload.name
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationFailed.on("email", EMAIL_TAKEN)
    # uid is the email, so the headers emitted before the update are stale
    attach_token(request, response, sign_token(user, session.token))
    return RegistrationOut(data=UserBrief.model_validate(user))


@router.delete("", response_model=Success)
async def destroy_account(
    request: Request,
    response: Response,
    session: AuthSession = Depends(current_session),
    db: AsyncSession = Depends(get_db),
):
    user = session.user
    # rooms are two-party, so they go with either participant
    res = await db.execute(select(Room).join(Entry, Entry.room_id == Room.id).where(Entry.user_id == user.id))
    for room in res.scalars().unique().all():
        await db.delete(room)
    await db.delete(user)
    await db.commit()
    logger.info("Destroyed account %s", user.id)
    detach_token(request, response)
    return Success()


@router.post("/sign_in", response_model=AuthOut)
async def sign_in(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(User).where(User.email == payload.email.lower()))
    user = res.scalar_one_or_none()
    # same answer for an unknown email and a wrong password
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed sign-in for %s", payload.email)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    attach_token(request, response, await issue_token(db, user))
    logger.info("User %s signed in", user.id)
    return AuthOut(data=UserBrief.model_validate(user))


@router.delete("/sign_out", response_model=Success)
async def sign_out(
    request: Request,
    response: Response,
    session: AuthSession = Depends(current_session),
    db: AsyncSession = Depends(get_db),
):
    await revoke_token(db, session.token)
    detach_token(request, response)
    logger.info("User %s signed out", session.user.id)
    return Success()


@router.get("/validate_token", response_model=ValidateTokenOut)
async def validate_token(session: AuthSession = Depends(current_session)):
    return ValidateTokenOut(data=UserBrief.model_validate(session.user))


@router.get("/sessions", response_model=SessionOut, response_model_exclude_none=True)
async def current_session_probe(
    session: AuthSession | None = Depends(optional_session), db: AsyncSession = Depends(get_db)
):
    # never an error status: the client branches on isLogin
    if session is None:
        return SessionOut(is_login=False, message="User does not exist")
    user = await load_user_detail(db, session.user.id)
    return SessionOut(is_login=True, data=UserOut.model_validate(user))
