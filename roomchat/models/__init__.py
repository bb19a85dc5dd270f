from .user import User, AuthSession
from .room import Room
from .message import Message
from .participant import Participant

__all__ = ["User", "AuthSession", "Room", "Message", "Participant"]
