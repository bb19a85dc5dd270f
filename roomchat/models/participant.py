from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from ..core.database import Base
from ._columns import new_id, utcnow


class Participant(Base):
    __tablename__ = "room_participants"
    __table_args__ = (UniqueConstraint("room_id", "user_id", name="uq_room_participants_room_user"),)

    id = Column(String, primary_key=True, default=new_id)
    room_id = Column(String, ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
