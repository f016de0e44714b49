from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


class Schema(BaseModel):
    # JSON bodies are camelCase both ways; python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------- AUTH ----------------------
class UserCreate(Schema):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)
    password_confirmation: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirmation:
            raise ValueError("passwordConfirmation doesn't match password")
        return self


class UserUpdate(Schema):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None


class LoginIn(Schema):
    email: EmailStr
    password: str


# ---------------------- USERS ----------------------
class UserBrief(Schema):
    id: int
    name: str
    email: str


class UserOut(UserBrief):
    followings: list[UserBrief] = []
    followers: list[UserBrief] = []


class AuthOut(Schema):
    data: UserBrief


class RegistrationOut(AuthOut):
    status: str = "success"


class ValidateTokenOut(AuthOut):
    success: bool = True


class SessionOut(Schema):
    is_login: bool
    data: UserOut | None = None
    message: str | None = None


# ---------------------- POSTS ----------------------
class PostCreate(Schema):
    content: str = Field(min_length=1, max_length=1000)


class LikeOut(Schema):
    id: int
    post_id: int
    user_id: int


class PostOut(Schema):
    id: int
    content: str
    created_at: datetime
    user: UserBrief
    likes: list[LikeOut] = []


# ---------------------- RELATIONSHIPS ----------------------
class RelationshipOut(Schema):
    id: int
    user_id: int
    follow_id: int


class FollowingOut(RelationshipOut):
    follow: UserBrief


# ---------------------- ROOMS ----------------------
class MessageCreate(Schema):
    content: str = Field(min_length=1, max_length=4000)


class MessageOut(Schema):
    id: int
    room_id: int
    user_id: int
    content: str
    created_at: datetime


class RoomOut(Schema):
    id: int
    current_user: UserBrief
    other_user: UserBrief
    last_message: MessageOut | None = None


class RoomDetail(Schema):
    id: int
    other_user: UserBrief
    messages: list[MessageOut] = []


class Success(Schema):
    success: bool = True
