# roomchat/schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 1000
DEFAULT_MAX_PARTICIPANTS = 50


class RoomType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class UserProfile(BaseModel):
    """Joined {username, email} sub-record of a user."""

    username: Optional[str] = None
    email: Optional[str] = None


class UserIdentity(BaseModel):
    id: str
    email: str
    username: Optional[str] = None


class AuthContext(BaseModel):
    access_token: str
    user: UserIdentity


class RoomRecord(BaseModel):
    id: str
    name: str
    type: RoomType
    category: Optional[str] = None
    max_participants: int
    creator_id: str
    created_at: datetime


class MessageRecord(BaseModel):
    id: str
    room_id: str
    sender_id: str
    content: str
    created_at: datetime
    is_deleted: bool = False
    user: Optional[UserProfile] = None


class ParticipantRecord(BaseModel):
    id: str
    room_id: str
    user_id: str
    joined_at: Optional[datetime] = None
    user: Optional[UserProfile] = None


# Requests

class SignUpRequest(BaseModel):
    email: str
    password: str
    username: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateRoomRequest(BaseModel):
    name: str
    type: RoomType = RoomType.PUBLIC
    category: Optional[str] = None
    max_participants: int = DEFAULT_MAX_PARTICIPANTS


class SendMessageRequest(BaseModel):
    content: str


# Responses / views

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserIdentity


class RoomCard(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    capacity_label: str
    href: str


class DirectoryView(BaseModel):
    view: Literal["directory"] = "directory"
    rooms: List[RoomCard]
    empty_text: Optional[str] = None


class MessageView(BaseModel):
    id: str
    sender_id: str
    content: str
    alignment: Literal["left", "right"]
    sender_label: Optional[str] = None
    sent_at: str


class ParticipantView(BaseModel):
    id: str
    avatar: str
    display_name: str


class RoomView(BaseModel):
    view: Literal["room"] = "room"
    room: RoomRecord
    can_delete: bool
    messages: List[MessageView]
    participants: List[ParticipantView]
    participant_count: int
    show_participants: bool = False
    empty_text: Optional[str] = None
