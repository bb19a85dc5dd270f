import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional, Set

from pydantic import ValidationError

from ..backend import BackendClient, ChangeEvent, Subscription
from ..core.exceptions import AuthRequiredError, BackendError, ChatError, NotFoundError
from ..schemas import (
    AuthContext,
    MessageRecord,
    MessageView,
    ParticipantRecord,
    ParticipantView,
    RoomRecord,
    RoomView,
    UserProfile,
)
from .rendering import message_view, participant_view

logger = logging.getLogger(__name__)

DIRECTORY_PATH = "/"
CONFIRM_DELETE_PROMPT = "Delete this room?"
DELETE_FAILED_ALERT = "Failed to delete the room"
EMPTY_HISTORY_TEXT = "No messages yet. Send the first one!"


class RoomSession:
    """State of one viewed room: metadata, history, participants and the live feed.

    ``enter()`` performs a visit (fetches, idempotent join, subscription);
    ``stream()`` consumes the subscription and yields each newly appended
    message. Close the session (or use it as an async context manager) to
    drop the subscription. Fetches that finish after close or after a room
    change are discarded.
    """

    def __init__(self, backend: BackendClient, context: AuthContext, room_id: str):
        self._backend = backend
        self._context = context
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self.room_id = room_id
        self._reset()

    def _reset(self) -> None:
        self.room: Optional[RoomRecord] = None
        self.messages: List[MessageRecord] = []
        self.participants: List[ParticipantRecord] = []
        self.current_user_id: Optional[str] = None
        self.loading = True
        self.redirect_to: Optional[str] = None
        self.draft = ""
        self.sending = False
        self.deleting = False
        self.error: Optional[ChatError] = None
        self.alert: Optional[str] = None
        self.show_participants = False
        self._message_ids: Set[str] = set()
        self._closed = False

    def _stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    # Lifecycle

    async def enter(self) -> "RoomSession":
        generation = self._generation
        tasks = [
            asyncio.ensure_future(self._resolve_identity(generation)),
            asyncio.ensure_future(self._fetch_room(generation)),
            asyncio.ensure_future(self._fetch_messages(generation)),
            asyncio.ensure_future(self._fetch_participants(generation)),
            asyncio.ensure_future(self.join()),
        ]
        # events queue up until stream() is consumed, so they land after the history
        self._subscribe()
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # __aexit__ does not run when entering fails
            self._unsubscribe()
            for task in tasks:
                task.cancel()
            raise
        return self

    async def load(self) -> "RoomSession":
        """Identity and room metadata only; no join, no subscription."""
        generation = self._generation
        await asyncio.gather(self._resolve_identity(generation), self._fetch_room(generation))
        return self

    async def change_room(self, room_id: str) -> "RoomSession":
        self._unsubscribe()
        self._generation += 1
        self.room_id = room_id
        self._reset()
        return await self.enter()

    async def close(self) -> None:
        self._closed = True
        self._unsubscribe()

    async def __aenter__(self) -> "RoomSession":
        return await self.enter()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _subscribe(self) -> None:
        self._unsubscribe()
        self._subscription = self._backend.subscribe(
            "messages",
            eq={"room_id": self.room_id},
            channel=f"room-{self.room_id}",
        )

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    # Loading

    async def _resolve_identity(self, generation: int) -> None:
        try:
            user = await self._backend.auth.get_user(self._context.access_token)
        except BackendError:
            logger.exception("Failed to resolve current user")
            return
        if not self._stale(generation) and user is not None:
            self.current_user_id = user.id

    async def _fetch_room(self, generation: int) -> None:
        try:
            record = await self._backend.select_single("chat_rooms", eq={"id": self.room_id})
            room = RoomRecord.model_validate(record)
        except (BackendError, ValidationError):
            logger.exception("Failed to fetch room %s", self.room_id)
            if not self._stale(generation):
                self.redirect_to = DIRECTORY_PATH
            return
        finally:
            if not self._stale(generation):
                self.loading = False
        if not self._stale(generation):
            self.room = room

    async def _fetch_messages(self, generation: int) -> None:
        try:
            records = await self._backend.select(
                "messages",
                eq={"room_id": self.room_id, "is_deleted": False},
                order_by="created_at",
                ascending=True,
                with_user=True,
            )
        except BackendError:
            logger.exception("Failed to fetch messages for room %s", self.room_id)
            return
        if self._stale(generation):
            return

        history = [MessageRecord.model_validate(record) for record in records]
        history_ids = {message.id for message in history}
        live = [message for message in self.messages if message.id not in history_ids]
        self.messages = history + live
        self._message_ids = history_ids | {message.id for message in live}

    async def _fetch_participants(self, generation: int) -> None:
        try:
            records = await self._backend.select(
                "room_participants",
                eq={"room_id": self.room_id},
                with_user=True,
            )
        except BackendError:
            logger.exception("Failed to fetch participants for room %s", self.room_id)
            return
        if not self._stale(generation):
            self.participants = [ParticipantRecord.model_validate(record) for record in records]

    async def join(self) -> bool:
        """Insert a participant row unless one already exists. True if a row was added."""
        try:
            user = await self._backend.auth.get_user(self._context.access_token)
            if user is None:
                return False
            existing = await self._backend.select(
                "room_participants",
                eq={"room_id": self.room_id, "user_id": user.id},
            )
            if existing:
                return False
            await self._backend.insert("room_participants", {"room_id": self.room_id, "user_id": user.id})
            logger.info("User %s joined room %s", user.id, self.room_id)
            return True
        except BackendError:
            logger.exception("Failed to join room %s", self.room_id)
            return False

    # Realtime

    async def stream(self) -> AsyncIterator[MessageRecord]:
        subscription = self._subscription
        if subscription is None:
            return
        async for change in subscription:
            message = await self.receive(change)
            if message is not None:
                yield message

    async def receive(self, change: ChangeEvent) -> Optional[MessageRecord]:
        """Append one insert event. Messages already in the list are dropped."""
        if self._closed:
            return None
        try:
            message = MessageRecord.model_validate(change.record)
        except ValidationError:
            logger.warning("Ignoring malformed message event on room %s", self.room_id)
            return None
        if message.room_id != self.room_id or message.is_deleted:
            return None
        if message.id in self._message_ids:
            logger.debug("Dropping duplicate message %s", message.id)
            return None

        if message.user is None:
            message.user = await self._sender_profile(message.sender_id)
        if self._closed or message.id in self._message_ids:
            return None

        self._message_ids.add(message.id)
        self.messages.append(message)
        return message

    async def _sender_profile(self, sender_id: str) -> Optional[UserProfile]:
        for participant in self.participants:
            if participant.user_id == sender_id and participant.user is not None:
                return participant.user
        try:
            record = await self._backend.select_single("users", eq={"id": sender_id})
        except BackendError:
            logger.exception("Failed to look up sender %s", sender_id)
            return None
        return UserProfile.model_validate(record)

    # Commands

    async def send(self, text: Optional[str] = None) -> bool:
        if text is not None:
            self.draft = text
        self.error = None
        content = self.draft.strip()
        if not content:
            return False

        self.sending = True
        try:
            user = await self._backend.auth.get_user(self._context.access_token)
            if user is None:
                raise AuthRequiredError()
            await self._backend.insert("messages", {
                "room_id": self.room_id,
                "sender_id": user.id,
                "content": content,
            })
        except ChatError as exc:
            logger.error("Failed to send message to room %s: %s", self.room_id, exc)
            self.error = exc
            return False
        finally:
            self.sending = False

        self.draft = ""
        return True

    @property
    def is_creator(self) -> bool:
        return (
            self.room is not None
            and self.current_user_id is not None
            and self.room.creator_id == self.current_user_id
        )

    can_delete = is_creator

    async def delete_room(self, confirm: Callable[[str], bool]) -> bool:
        """Delete the room's messages, then the room. Nothing is rolled back on failure."""
        if not self.can_delete:
            return False
        if not confirm(CONFIRM_DELETE_PROMPT):
            return False

        self.deleting = True
        self.alert = None
        try:
            await self._backend.delete("messages", eq={"room_id": self.room_id})
            deleted = await self._backend.delete("chat_rooms", eq={"id": self.room_id})
            if not deleted:
                raise BackendError(f"Room {self.room_id} no longer exists")
        except BackendError:
            logger.exception("Failed to delete room %s", self.room_id)
            self.alert = DELETE_FAILED_ALERT
            return False
        finally:
            self.deleting = False

        logger.info("Room %s deleted by %s", self.room_id, self.current_user_id)
        self.redirect_to = DIRECTORY_PATH
        return True

    # Presentation

    def toggle_participants(self) -> bool:
        self.show_participants = not self.show_participants
        return self.show_participants

    def message_view(self, message: MessageRecord) -> MessageView:
        return message_view(message, self.current_user_id)

    def message_views(self) -> List[MessageView]:
        return [self.message_view(message) for message in self.messages]

    def participant_views(self) -> List[ParticipantView]:
        return [participant_view(participant) for participant in self.participants]

    def view(self) -> RoomView:
        if self.room is None:
            raise NotFoundError(f"Room {self.room_id} is not loaded")
        return RoomView(
            room=self.room,
            can_delete=self.can_delete,
            messages=self.message_views(),
            participants=self.participant_views(),
            participant_count=len(self.participants),
            show_participants=self.show_participants,
            empty_text=None if self.messages else EMPTY_HISTORY_TEXT,
        )
