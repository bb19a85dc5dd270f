import logging
from typing import List

from ..backend import BackendClient
from ..core.exceptions import BackendError
from ..schemas import AuthContext, DirectoryView, RoomCard, RoomRecord, RoomType
from .creation import CreationDialog
from .rendering import room_card

logger = logging.getLogger(__name__)

EMPTY_DIRECTORY_TEXT = "No chat rooms yet"


class RoomDirectory:
    def __init__(self, backend: BackendClient, context: AuthContext):
        self._backend = backend
        self.context = context
        self.rooms: List[RoomRecord] = []
        self.loading = True
        self.dialog = None

    async def refresh(self) -> List[RoomRecord]:
        """Refetch the public rooms, newest first. Failures leave an empty list."""
        try:
            records = await self._backend.select(
                "chat_rooms",
                eq={"type": RoomType.PUBLIC.value},
                order_by="created_at",
                ascending=False,
            )
            self.rooms = [RoomRecord.model_validate(record) for record in records]
        except BackendError:
            logger.exception("Failed to fetch rooms")
            self.rooms = []
        finally:
            self.loading = False
        return self.rooms

    def cards(self) -> List[RoomCard]:
        return [room_card(room) for room in self.rooms]

    def open_room(self, room_id: str) -> str:
        return f"/room/{room_id}"

    def creation_dialog(self) -> CreationDialog:
        self.dialog = CreationDialog(
            self._backend,
            self.context,
            on_created=self.refresh,
            on_close=self._close_dialog,
        )
        return self.dialog

    def _close_dialog(self) -> None:
        self.dialog = None

    async def logout(self) -> None:
        try:
            await self._backend.auth.sign_out(self.context.access_token)
        except BackendError:
            logger.exception("Sign-out failed")

    def view(self) -> DirectoryView:
        cards = self.cards()
        return DirectoryView(rooms=cards, empty_text=None if cards else EMPTY_DIRECTORY_TEXT)
