import pytest

from roomchat.core.exceptions import AuthRequiredError, BackendError
from roomchat.schemas import RoomType
from roomchat.services import RoomDirectory

pytestmark = pytest.mark.anyio


async def test_create_room_refreshes_directory_and_closes(backend, sign_up):
    alice = await sign_up("alice@example.com", "alice")
    directory = RoomDirectory(backend, alice)
    await directory.refresh()

    dialog = directory.creation_dialog()
    assert dialog.type == RoomType.PUBLIC
    assert dialog.max_participants == 50
    dialog.name = "雑談"

    assert await dialog.submit()
    assert not dialog.is_open
    assert directory.dialog is None

    cards = directory.cards()
    assert len(cards) == 1
    assert cards[0].name == "雑談"
    assert cards[0].category is None
    assert directory.rooms[0].creator_id == alice.user.id


async def test_max_participants_is_clamped(backend, sign_up):
    alice = await sign_up("alice@example.com")
    dialog = RoomDirectory(backend, alice).creation_dialog()

    dialog.max_participants = 1
    assert dialog.max_participants == 2
    dialog.max_participants = 5000
    assert dialog.max_participants == 1000
    dialog.max_participants = 12
    assert dialog.max_participants == 12


async def test_empty_name_fails_inline_without_writing(backend, sign_up):
    alice = await sign_up("alice@example.com")
    directory = RoomDirectory(backend, alice)
    dialog = directory.creation_dialog()
    dialog.name = "   "

    assert not await dialog.submit()
    assert dialog.error == "Room name is required"
    assert dialog.is_open
    assert await backend.select("chat_rooms") == []


async def test_signed_out_user_gets_authentication_error(backend, sign_up):
    alice = await sign_up("alice@example.com")
    directory = RoomDirectory(backend, alice)
    dialog = directory.creation_dialog()
    dialog.name = "general"
    await backend.auth.sign_out(alice.access_token)

    assert not await dialog.submit()
    assert isinstance(dialog.failure, AuthRequiredError)
    assert dialog.error == "Authentication required"
    assert dialog.is_open


async def test_insert_failure_keeps_dialog_open_for_retry(backend, sign_up, monkeypatch):
    alice = await sign_up("alice@example.com")
    directory = RoomDirectory(backend, alice)
    dialog = directory.creation_dialog()
    dialog.name = "general"
    dialog.category = "games"
    dialog.type = RoomType.PRIVATE

    original_insert = backend.insert

    async def failing_insert(table, values):
        raise BackendError("insert timed out")

    monkeypatch.setattr(backend, "insert", failing_insert)
    assert not await dialog.submit()
    assert dialog.error == "insert timed out"
    assert dialog.is_open
    assert not dialog.submitting

    monkeypatch.setattr(backend, "insert", original_insert)
    assert await dialog.submit()
    assert dialog.error == ""
    rooms = await backend.select("chat_rooms")
    assert rooms[0]["type"] == "private"
    assert rooms[0]["category"] == "games"
    # private rooms stay out of the listing
    assert directory.rooms == []
