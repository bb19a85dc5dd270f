import inspect
import logging
from typing import Any, Callable, Optional

from ..backend import BackendClient
from ..core.exceptions import AuthRequiredError, ChatError, InvalidInputError
from ..schemas import (
    DEFAULT_MAX_PARTICIPANTS,
    MAX_PARTICIPANTS,
    MIN_PARTICIPANTS,
    AuthContext,
    RoomType,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong"


def clamp_participants(value: int) -> int:
    return max(MIN_PARTICIPANTS, min(MAX_PARTICIPANTS, int(value)))


class CreationDialog:
    """Form state for a new room. Stays open with an inline error on failure."""

    def __init__(
        self,
        backend: BackendClient,
        context: AuthContext,
        on_created: Optional[Callable[[], Any]] = None,
        on_close: Optional[Callable[[], Any]] = None,
    ):
        self._backend = backend
        self._context = context
        self._on_created = on_created
        self._on_close = on_close

        self.name = ""
        self.type = RoomType.PUBLIC
        self.category = ""
        self._max_participants = DEFAULT_MAX_PARTICIPANTS
        self.error = ""
        self.failure: Optional[ChatError] = None
        self.submitting = False
        self.is_open = True

    @property
    def max_participants(self) -> int:
        return self._max_participants

    @max_participants.setter
    def max_participants(self, value: int) -> None:
        self._max_participants = clamp_participants(value)

    async def submit(self) -> bool:
        self.error = ""
        self.failure = None
        self.submitting = True
        try:
            if not self.name.strip():
                raise InvalidInputError("Room name is required")

            user = await self._backend.auth.get_user(self._context.access_token)
            if user is None:
                raise AuthRequiredError()

            await self._backend.insert("chat_rooms", {
                "name": self.name,
                "type": RoomType(self.type).value,
                "category": self.category or None,
                "max_participants": self.max_participants,
                "creator_id": user.id,
            })
        except ChatError as exc:
            logger.error("Room creation failed: %s", exc)
            self.failure = exc
            self.error = str(exc) or GENERIC_ERROR
            return False
        finally:
            self.submitting = False

        await _call(self._on_created)
        self.close()
        return True

    def close(self) -> None:
        self.is_open = False
        if self._on_close is not None:
            self._on_close()

    cancel = close


async def _call(callback: Optional[Callable[[], Any]]) -> None:
    if callback is None:
        return
    result = callback()
    if inspect.isawaitable(result):
        await result
