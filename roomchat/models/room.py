from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from ..core.database import Base
from ._columns import new_id, utcnow


class Room(Base):
    __tablename__ = "chat_rooms"
    __table_args__ = (
        CheckConstraint("type IN ('public', 'private')", name="ck_chat_rooms_type"),
        CheckConstraint("max_participants BETWEEN 2 AND 1000", name="ck_chat_rooms_max_participants"),
    )

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="public", index=True)
    category = Column(String, nullable=True)
    max_participants = Column(Integer, nullable=False, default=50)
    creator_id = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
