from datetime import datetime, timezone
from typing import Optional

from ..schemas import MessageRecord, MessageView, ParticipantRecord, ParticipantView, RoomCard, RoomRecord

AVATAR_PLACEHOLDER = "?"
UNKNOWN_NAME = "Unknown"
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"


def avatar_glyph(username: Optional[str]) -> str:
    return username[0].upper() if username else AVATAR_PLACEHOLDER


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def room_card(room: RoomRecord) -> RoomCard:
    return RoomCard(
        id=room.id,
        name=room.name,
        category=room.category or None,
        capacity_label=f"max {room.max_participants}",
        href=f"/room/{room.id}",
    )


def message_view(message: MessageRecord, current_user_id: Optional[str]) -> MessageView:
    """Own messages sit on the right with no label; others carry the sender's username."""
    mine = current_user_id is not None and message.sender_id == current_user_id
    label = None
    if not mine and message.user is not None:
        label = message.user.username
    return MessageView(
        id=message.id,
        sender_id=message.sender_id,
        content=message.content,
        alignment="right" if mine else "left",
        sender_label=label,
        sent_at=format_timestamp(message.created_at),
    )


def participant_view(participant: ParticipantRecord) -> ParticipantView:
    username = participant.user.username if participant.user else None
    return ParticipantView(
        id=participant.id,
        avatar=avatar_glyph(username),
        display_name=username or UNKNOWN_NAME,
    )
