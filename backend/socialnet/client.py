"""Async client for the social network API.

The server rotates the session token on every authenticated response, so the
client keeps exactly one :class:`SessionToken` and replaces it with whatever
the latest response carried. Responses are validated against the same
pydantic schemas the server renders, so a malformed payload fails here rather
than deep inside calling code.
"""
import logging
from collections.abc import Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .schemas import (
    AuthOut,
    FollowingOut,
    LikeOut,
    MessageOut,
    PostOut,
    RegistrationOut,
    RelationshipOut,
    RoomDetail,
    RoomOut,
    SessionOut,
    Success,
    UserBrief,
    UserOut,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    client: str
    uid: str
    expiry: int | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "SessionToken | None":
        access_token, client, uid = headers.get("access-token"), headers.get("client"), headers.get("uid")
        if not (access_token and client and uid):
            return None
        expiry = headers.get("expiry")
        return cls(
            access_token=access_token,
            client=client,
            uid=uid,
            expiry=int(expiry) if expiry and expiry.isdigit() else None,
        )

    def as_headers(self) -> dict[str, str]:
        return {"access-token": self.access_token, "client": self.client, "uid": self.uid}


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class Unauthorized(ApiError):
    pass


class Forbidden(ApiError):
    pass


class NotFound(ApiError):
    pass


class UnprocessableEntity(ApiError):
    @property
    def errors(self) -> dict[str, list[str]]:
        return (self.payload or {}).get("errors", {})


class MalformedResponse(ApiError):
    pass


_ERRORS = {401: Unauthorized, 403: Forbidden, 404: NotFound, 422: UnprocessableEntity}


class SocialClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000/api/v1",
        *,
        http: httpx.AsyncClient | None = None,
        token: SessionToken | None = None,
    ):
        self._http = http or httpx.AsyncClient(base_url=base_url)
        self._owns_http = http is None
        self.token = token

    async def __aenter__(self) -> "SocialClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def signed_in(self) -> bool:
        return self.token is not None

    async def _request(self, method: str, url: str, json: Any = None) -> Any:
        headers = self.token.as_headers() if self.token else {}
        resp = await self._http.request(method, url, json=json, headers=headers)

        # overwrite on receipt: the newest token is the only valid one
        fresh = SessionToken.from_headers(resp.headers)
        if fresh is not None:
            self.token = fresh

        try:
            body = resp.json() if resp.content else None
        except ValueError:
            body = None
        if resp.is_error:
            message = body.get("message", resp.reason_phrase) if isinstance(body, dict) else resp.reason_phrase
            if resp.status_code == 401:
                self.token = None
            logger.warning("%s %s failed with %s: %s", method, url, resp.status_code, message)
            raise _ERRORS.get(resp.status_code, ApiError)(resp.status_code, message, body)
        return body

    async def _call(self, shape: type[T], method: str, url: str, json: Any = None) -> T:
        body = await self._request(method, url, json=json)
        try:
            return TypeAdapter(shape).validate_python(body)
        except ValidationError as exc:
            raise MalformedResponse(200, f"unexpected payload from {method} {url}", body) from exc

    # ---------------------- AUTH ----------------------
    async def register(self, name: str, email: str, password: str, password_confirmation: str | None = None) -> UserBrief:
        body = {
            "name": name,
            "email": email,
            "password": password,
            "passwordConfirmation": password if password_confirmation is None else password_confirmation,
        }
        return (await self._call(RegistrationOut, "POST", "/auth", body)).data

    async def sign_in(self, email: str, password: str) -> UserBrief:
        return (await self._call(AuthOut, "POST", "/auth/sign_in", {"email": email, "password": password})).data

    async def sign_out(self) -> None:
        await self._call(Success, "DELETE", "/auth/sign_out")
        self.token = None

    async def update_account(self, *, name: str | None = None, email: str | None = None) -> UserBrief:
        body = {k: v for k, v in {"name": name, "email": email}.items() if v is not None}
        return (await self._call(RegistrationOut, "PATCH", "/auth", body)).data

    async def destroy_account(self) -> None:
        await self._call(Success, "DELETE", "/auth")
        self.token = None

    async def current_session(self) -> SessionOut:
        return await self._call(SessionOut, "GET", "/auth/sessions")

    # ---------------------- POSTS ----------------------
    async def list_posts(self) -> list[PostOut]:
        return await self._call(list[PostOut], "GET", "/posts")

    async def get_post(self, post_id: int) -> PostOut:
        return await self._call(PostOut, "GET", f"/posts/{post_id}")

    async def create_post(self, content: str) -> PostOut:
        return await self._call(PostOut, "POST", "/posts", {"content": content})

    async def update_post(self, post_id: int, content: str) -> PostOut:
        return await self._call(PostOut, "PATCH", f"/posts/{post_id}", {"content": content})

    async def delete_post(self, post_id: int) -> None:
        await self._call(Success, "DELETE", f"/posts/{post_id}")

    async def like(self, post_id: int) -> LikeOut:
        return await self._call(LikeOut, "POST", f"/posts/{post_id}/likes")

    async def unlike(self, post_id: int) -> LikeOut:
        return await self._call(LikeOut, "DELETE", f"/likes/{post_id}")

    async def toggle_like(self, post_id: int) -> PostOut:
        """Like or unlike depending on current state, then refetch the post."""
        me = self._session_user_id(await self.current_session())
        post = await self.get_post(post_id)
        if any(like.user_id == me for like in post.likes):
            await self.unlike(post_id)
        else:
            await self.like(post_id)
        return await self.get_post(post_id)

    # ---------------------- USERS ----------------------
    async def list_users(self) -> list[UserBrief]:
        return await self._call(list[UserBrief], "GET", "/users")

    async def get_user(self, user_id: int) -> UserOut:
        return await self._call(UserOut, "GET", f"/users/{user_id}")

    async def follow(self, user_id: int) -> RelationshipOut:
        return await self._call(RelationshipOut, "POST", f"/users/{user_id}/relationships")

    async def followings(self) -> list[FollowingOut]:
        return await self._call(list[FollowingOut], "GET", "/relationships")

    async def delete_relationship(self, relationship_id: int) -> RelationshipOut:
        return await self._call(RelationshipOut, "DELETE", f"/relationships/{relationship_id}")

    async def unfollow(self, user_id: int) -> RelationshipOut:
        """Drop the edge to ``user_id``; deletion is by edge id, so look it up first."""
        for rel in await self.followings():
            if rel.follow_id == user_id:
                return await self.delete_relationship(rel.id)
        raise NotFound(404, f"Not following user {user_id}")

    async def toggle_follow(self, user_id: int) -> UserOut:
        if any(rel.follow_id == user_id for rel in await self.followings()):
            await self.unfollow(user_id)
        else:
            await self.follow(user_id)
        return await self.get_user(user_id)

    # ---------------------- ROOMS ----------------------
    async def open_room(self, user_id: int) -> RoomOut:
        return await self._call(RoomOut, "POST", f"/users/{user_id}/rooms")

    async def list_rooms(self) -> list[RoomOut]:
        rooms = await self._call(list[RoomOut], "GET", "/rooms")
        rooms.sort(key=lambda r: r.last_message.id if r.last_message else -1, reverse=True)
        return rooms

    async def get_room(self, room_id: int) -> RoomDetail:
        return await self._call(RoomDetail, "GET", f"/rooms/{room_id}")

    async def send_message(self, room_id: int, content: str) -> MessageOut:
        return await self._call(MessageOut, "POST", f"/rooms/{room_id}/messages", {"content": content})

    @staticmethod
    def _session_user_id(session: SessionOut) -> int:
        if not session.is_login or session.data is None:
            raise Unauthorized(401, session.message or "Not signed in")
        return session.data.id
