import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..backend import BackendClient
from ..core.exceptions import BackendError
from ..schemas import AuthContext

logger = logging.getLogger(__name__)

ROOM_PATH = re.compile(r"^/room/(?P<room_id>[^/]+)/?$")

LOGIN = "login"
DIRECTORY = "directory"
ROOM = "room"


@dataclass
class RouteDecision:
    view: Optional[str] = None
    room_id: Optional[str] = None
    redirect_to: Optional[str] = None


class SessionGate:
    """Owns the AuthContext lifecycle and decides which view a path gets.

    A context is established by ``sign_up``/``sign_in`` and torn down by
    ``sign_out``; everything downstream receives it explicitly.
    """

    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def sign_up(self, email: str, password: str, username: Optional[str] = None) -> AuthContext:
        return await self._backend.auth.sign_up(email, password, username)

    async def sign_in(self, email: str, password: str) -> AuthContext:
        context = await self._backend.auth.sign_in_with_password(email, password)
        logger.info("User %s signed in", context.user.id)
        return context

    async def resolve(self, token: Optional[str]) -> Optional[AuthContext]:
        if not token:
            return None
        try:
            user = await self._backend.auth.get_user(token)
        except BackendError:
            logger.exception("Identity lookup failed")
            return None
        if user is None:
            return None
        return AuthContext(access_token=token, user=user)

    async def sign_out(self, context: AuthContext) -> None:
        await self._backend.auth.sign_out(context.access_token)
        logger.info("User %s signed out", context.user.id)

    def route(self, path: str, context: Optional[AuthContext]) -> RouteDecision:
        if path in ("", "/"):
            return RouteDecision(view=DIRECTORY if context else LOGIN)

        match = ROOM_PATH.match(path)
        if match:
            if context is None:
                return RouteDecision(redirect_to="/")
            return RouteDecision(view=ROOM, room_id=match.group("room_id"))

        return RouteDecision(redirect_to="/")
