import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Header, HTTPException, Request, Response
from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .db import get_db
from .models import AuthToken, User, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

NOT_AUTHENTICATED = "You need to sign in or sign up before continuing."
INVALID_CREDENTIALS = "Invalid login credentials. Please try again."

TOKEN_HEADERS = ("access-token", "client", "uid", "expiry", "token-type")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class IssuedToken:
    """One rotation of the session token triple, as sent back in response headers."""

    access_token: str
    client: str
    uid: str
    expiry: int

    def headers(self) -> dict[str, str]:
        return {
            "access-token": self.access_token,
            "client": self.client,
            "uid": self.uid,
            "expiry": str(self.expiry),
            "token-type": "Bearer",
        }


def create_access_token(user_id: int, client: str, jti: str, expires_at: datetime) -> str:
    payload = {
        "sub": str(user_id),
        "client": client,
        "jti": jti,
        "iat": int(time.time()),
        "exp": int(_aware(expires_at).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def sign_token(user: User, row: AuthToken) -> IssuedToken:
    return IssuedToken(
        access_token=create_access_token(user.id, row.client, row.current_jti, row.expires_at),
        client=row.client,
        uid=user.email,
        expiry=int(_aware(row.expires_at).timestamp()),
    )


async def issue_token(db: AsyncSession, user: User) -> IssuedToken:
    """Open a new client session for ``user`` and prune the oldest ones over the cap."""
    now = utcnow()
    row = AuthToken(
        user_id=user.id,
        client=secrets.token_urlsafe(16),
        current_jti=secrets.token_hex(16),
        expires_at=now + timedelta(minutes=settings.token_lifespan_minutes),
    )
    db.add(row)
    await db.flush()

    res = await db.execute(
        select(AuthToken).where(AuthToken.user_id == user.id).order_by(AuthToken.id.desc())
    )
    stale = res.scalars().all()[settings.max_clients_per_user:]
    for old in stale:
        await db.delete(old)
    if stale:
        logger.info("Pruned %d stale sessions for user %s", len(stale), user.id)

    await db.commit()
    return sign_token(user, row)


async def rotate_token(db: AsyncSession, user: User, row: AuthToken, presented_jti: str) -> IssuedToken:
    if presented_jti == row.current_jti:
        now = utcnow()
        # swap only if nobody rotated since we read the row; the loser re-signs the winner's jti
        res = await db.execute(
            update(AuthToken)
            .where(AuthToken.id == row.id, AuthToken.current_jti == presented_jti)
            .values(
                previous_jti=presented_jti,
                current_jti=secrets.token_hex(16),
                rotated_at=now,
                expires_at=now + timedelta(minutes=settings.token_lifespan_minutes),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if res.rowcount:
            logger.debug("Rotated token for user %s client %s", user.id, row.client)
        else:
            logger.debug("Lost rotation race for user %s client %s", user.id, row.client)
        await db.refresh(row)
    # a request racing a rotation gets the current token re-signed instead of a new one
    return sign_token(user, row)


async def revoke_token(db: AsyncSession, row: AuthToken) -> None:
    await db.delete(row)
    await db.commit()


def _within_batch_buffer(row: AuthToken) -> bool:
    if row.rotated_at is None:
        return False
    return utcnow() - _aware(row.rotated_at) <= timedelta(seconds=settings.token_batch_buffer_seconds)


async def authenticate(
    db: AsyncSession, access_token: str | None, client: str | None, uid: str | None
) -> tuple[User, AuthToken, str] | None:
    """Resolve the token triple to ``(user, token row, presented jti)``, or None if it doesn't check out."""
    if not (access_token and client and uid):
        return None
    try:
        claims = decode_token(access_token)
    except HTTPException:
        return None
    if claims.get("client") != client:
        return None

    res = await db.execute(select(AuthToken).where(AuthToken.client == client))
    row = res.scalar_one_or_none()
    if row is None or str(row.user_id) != claims.get("sub"):
        return None
    if _aware(row.expires_at) < utcnow():
        return None

    jti = claims.get("jti")
    if jti != row.current_jti and not (jti == row.previous_jti and _within_batch_buffer(row)):
        return None

    user = await db.get(User, row.user_id)
    if user is None or user.email != uid:
        return None
    return user, row, jti


@dataclass
class AuthSession:
    user: User
    token: AuthToken


def attach_token(request: Request, response: Response, issued: IssuedToken) -> None:
    headers = issued.headers()
    response.headers.update(headers)
    # error handlers re-emit these so a failed call doesn't cost the client its session
    request.state.session_headers = headers


def detach_token(request: Request, response: Response) -> None:
    for name in TOKEN_HEADERS:
        if name in response.headers:
            del response.headers[name]
    request.state.session_headers = {}


async def _resolve(request: Request, response: Response, db: AsyncSession, access_token, client, uid):
    found = await authenticate(db, access_token, client, uid)
    if found is None:
        return None
    user, row, jti = found
    attach_token(request, response, await rotate_token(db, user, row, jti))
    return AuthSession(user=user, token=row)


async def optional_session(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    access_token: str | None = Header(default=None),
    client: str | None = Header(default=None),
    uid: str | None = Header(default=None),
) -> AuthSession | None:
    return await _resolve(request, response, db, access_token, client, uid)


async def current_session(session: AuthSession | None = Depends(optional_session)) -> AuthSession:
    if session is None:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    return session


async def get_current_user(session: AuthSession = Depends(current_session)) -> User:
    return session.user
