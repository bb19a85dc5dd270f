from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from ..core.database import Base
from ._columns import new_id, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=new_id)
    # no ON DELETE CASCADE: a room can only be removed once its messages are gone
    room_id = Column(String, ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(String, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
