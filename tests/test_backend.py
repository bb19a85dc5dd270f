import asyncio
from datetime import datetime, timedelta

import pytest

from roomchat.backend.auth import hash_password, verify_password
from roomchat.core.exceptions import AuthRequiredError, BackendError, NotFoundError
from roomchat.models import User

pytestmark = pytest.mark.anyio


async def test_sign_in_and_sign_out_lifecycle(backend, sign_up):
    context = await sign_up("alice@example.com", "alice")

    assert (await backend.auth.get_user(context.access_token)).id == context.user.id

    second = await backend.auth.sign_in_with_password("ALICE@example.com", "correct-horse")
    assert second.user.id == context.user.id

    await backend.auth.sign_out(context.access_token)
    assert await backend.auth.get_user(context.access_token) is None
    assert await backend.auth.get_user(second.access_token) is not None


async def test_sign_in_rejects_wrong_password(backend, sign_up):
    await sign_up("alice@example.com")
    with pytest.raises(AuthRequiredError):
        await backend.auth.sign_in_with_password("alice@example.com", "nope")


async def test_passwords_are_stored_as_bcrypt_hashes(backend, sign_up):
    alice = await sign_up("alice@example.com")
    with backend.auth._session_factory() as db:
        stored = db.get(User, alice.user.id).password_hash

    assert stored.startswith("$2b$")
    assert "correct-horse" not in stored
    assert verify_password("correct-horse", stored)
    assert not verify_password("correct-horsf", stored)
    assert not verify_password("correct-horse", "not-a-hash")


async def test_long_passwords_hash_and_verify():
    password = "x" * 100
    assert verify_password(password, hash_password(password))


async def test_duplicate_email_is_rejected(sign_up):
    await sign_up("alice@example.com")
    with pytest.raises(BackendError):
        await sign_up("alice@example.com")


async def test_select_filters_orders_and_joins_users(backend, sign_up, make_room):
    alice = await sign_up("alice@example.com", "alice")
    room = await make_room(alice)
    base = datetime(2024, 1, 1, 12, 0, 0)
    for offset, content in [(2, "third"), (0, "first"), (1, "second")]:
        await backend.insert("messages", {
            "room_id": room["id"],
            "sender_id": alice.user.id,
            "content": content,
            "created_at": base + timedelta(minutes=offset),
        })

    records = await backend.select(
        "messages", eq={"room_id": room["id"]}, order_by="created_at", with_user=True,
    )

    assert [r["content"] for r in records] == ["first", "second", "third"]
    assert records[0]["user"] == {"username": "alice", "email": "alice@example.com"}


async def test_users_table_never_exposes_password_hash(backend, sign_up):
    alice = await sign_up("alice@example.com", "alice")
    record = await backend.select_single("users", eq={"id": alice.user.id})
    assert "password_hash" not in record
    assert record["username"] == "alice"


async def test_select_single_raises_not_found(backend):
    with pytest.raises(NotFoundError):
        await backend.select_single("chat_rooms", eq={"id": "missing"})


async def test_unknown_table_and_column_are_backend_errors(backend):
    with pytest.raises(BackendError):
        await backend.select("nope")
    with pytest.raises(BackendError):
        await backend.select("messages", eq={"nope": 1})


async def test_room_with_messages_cannot_be_deleted_first(backend, sign_up, make_room):
    alice = await sign_up("alice@example.com")
    room = await make_room(alice)
    await backend.insert("messages", {"room_id": room["id"], "sender_id": alice.user.id, "content": "hi"})

    with pytest.raises(BackendError):
        await backend.delete("chat_rooms", eq={"id": room["id"]})

    assert await backend.delete("messages", eq={"room_id": room["id"]}) == 1
    assert await backend.delete("chat_rooms", eq={"id": room["id"]}) == 1


async def test_delete_requires_a_filter(backend):
    with pytest.raises(BackendError):
        await backend.delete("messages", eq={})


async def test_max_participants_bounds_are_enforced(sign_up, make_room):
    alice = await sign_up("alice@example.com")
    with pytest.raises(BackendError):
        await make_room(alice, max_participants=1)


async def test_duplicate_participant_row_is_rejected(backend, sign_up, make_room):
    alice = await sign_up("alice@example.com")
    room = await make_room(alice)
    await backend.insert("room_participants", {"room_id": room["id"], "user_id": alice.user.id})
    with pytest.raises(BackendError):
        await backend.insert("room_participants", {"room_id": room["id"], "user_id": alice.user.id})


async def test_insert_publishes_to_matching_subscribers(backend, sign_up, make_room):
    alice = await sign_up("alice@example.com")
    room = await make_room(alice)
    other = await make_room(alice, name="other")
    subscription = backend.subscribe("messages", eq={"room_id": room["id"]})

    await backend.insert("messages", {"room_id": other["id"], "sender_id": alice.user.id, "content": "elsewhere"})
    inserted = await backend.insert("messages", {"room_id": room["id"], "sender_id": alice.user.id, "content": "hi"})

    event = await asyncio.wait_for(subscription.__anext__(), 1)
    assert event.record["id"] == inserted["id"]
    assert event.record["content"] == "hi"
    subscription.close()
