import pytest
from fastapi.testclient import TestClient

from roomchat.backend import BackendClient
from roomchat.core.config import Settings
from roomchat.core.database import init_db, make_engine
from roomchat.main import create_app
from roomchat.services import SessionGate

PASSWORD = "correct-horse"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'roomchat.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def backend(engine):
    return BackendClient(engine)


@pytest.fixture
def sign_up(backend):
    """Async factory returning an AuthContext for a fresh user."""
    gate = SessionGate(backend)

    async def _sign_up(email, username=None):
        return await gate.sign_up(email, PASSWORD, username)

    return _sign_up


@pytest.fixture
def make_room(backend):
    async def _make_room(creator, name="general", type="public", category=None, max_participants=50, **extra):
        return await backend.insert("chat_rooms", {
            "name": name,
            "type": type,
            "category": category,
            "max_participants": max_participants,
            "creator_id": creator.user.id,
            **extra,
        })

    return _make_room


@pytest.fixture
def app(backend):
    settings = Settings(log_level="DEBUG")
    return create_app(settings, backend=backend)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register(client):
    """Sign a user up over HTTP and return (user, auth headers)."""

    def _register(email, username=None):
        response = client.post("/auth/signup", json={"email": email, "password": PASSWORD, "username": username})
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return _register
