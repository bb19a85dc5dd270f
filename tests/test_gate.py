import pytest

from roomchat.services import SessionGate

pytestmark = pytest.mark.anyio


async def test_resolve_returns_context_until_sign_out(backend, sign_up):
    gate = SessionGate(backend)
    context = await sign_up("alice@example.com", "alice")

    resolved = await gate.resolve(context.access_token)
    assert resolved.user.id == context.user.id

    await gate.sign_out(context)
    assert await gate.resolve(context.access_token) is None
    assert await gate.resolve(None) is None
    assert await gate.resolve("made-up-token") is None


async def test_sign_in_establishes_a_new_context(backend, sign_up):
    gate = SessionGate(backend)
    await sign_up("alice@example.com", "alice")
    context = await gate.sign_in("alice@example.com", "correct-horse")
    assert context.user.username == "alice"
    assert await gate.resolve(context.access_token) is not None


async def test_routes(backend, sign_up):
    gate = SessionGate(backend)
    context = await sign_up("alice@example.com")

    assert gate.route("/", None).view == "login"
    assert gate.route("/", context).view == "directory"

    unauthenticated = gate.route("/room/abc", None)
    assert unauthenticated.view is None
    assert unauthenticated.redirect_to == "/"

    decision = gate.route("/room/abc", context)
    assert decision.view == "room"
    assert decision.room_id == "abc"

    assert gate.route("/elsewhere", context).redirect_to == "/"
