from .creation import CreationDialog
from .directory import RoomDirectory
from .gate import RouteDecision, SessionGate
from .session import RoomSession

__all__ = ["CreationDialog", "RoomDirectory", "RouteDecision", "SessionGate", "RoomSession"]
