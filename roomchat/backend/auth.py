import logging
import secrets
from typing import Optional

import bcrypt
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.exceptions import AuthRequiredError, BackendError
from ..models import AuthSession, User
from ..schemas import AuthContext, UserIdentity

logger = logging.getLogger(__name__)


# bcrypt only reads the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode()[:MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt()).decode()


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(_secret(password), encoded.encode())
    except ValueError:
        # not a bcrypt hash
        return False


def _identity(user: User) -> UserIdentity:
    return UserIdentity(id=user.id, email=user.email, username=user.username)


class AuthAPI:
    """Session issuance and identity lookup for the backend."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _open_session(self, db, user: User) -> AuthContext:
        token = secrets.token_urlsafe(32)
        db.add(AuthSession(token=token, user_id=user.id))
        db.commit()
        return AuthContext(access_token=token, user=_identity(user))

    def _sign_up_sync(self, email: str, password: str, username: Optional[str]) -> AuthContext:
        with self._session_factory() as db:
            try:
                user = User(email=email.strip().lower(), username=username, password_hash=hash_password(password))
                db.add(user)
                db.flush()
                return self._open_session(db, user)
            except IntegrityError as exc:
                db.rollback()
                raise BackendError("Email is already registered") from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise BackendError(str(exc)) from exc

    def _sign_in_sync(self, email: str, password: str) -> AuthContext:
        with self._session_factory() as db:
            try:
                user = db.query(User).filter(User.email == email.strip().lower()).first()
                if not user or not verify_password(password, user.password_hash):
                    raise AuthRequiredError("Invalid login credentials")
                return self._open_session(db, user)
            except SQLAlchemyError as exc:
                db.rollback()
                raise BackendError(str(exc)) from exc

    def _get_user_sync(self, token: str) -> Optional[UserIdentity]:
        with self._session_factory() as db:
            try:
                row = (
                    db.query(User)
                    .join(AuthSession, AuthSession.user_id == User.id)
                    .filter(AuthSession.token == token)
                    .first()
                )
            except SQLAlchemyError as exc:
                raise BackendError(str(exc)) from exc
            return _identity(row) if row else None

    def _sign_out_sync(self, token: str) -> None:
        with self._session_factory() as db:
            try:
                db.query(AuthSession).filter(AuthSession.token == token).delete(synchronize_session=False)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise BackendError(str(exc)) from exc

    async def sign_up(self, email: str, password: str, username: Optional[str] = None) -> AuthContext:
        context = await run_in_threadpool(self._sign_up_sync, email, password, username)
        logger.info("Registered user %s", context.user.id)
        return context

    async def sign_in_with_password(self, email: str, password: str) -> AuthContext:
        return await run_in_threadpool(self._sign_in_sync, email, password)

    async def get_user(self, token: Optional[str]) -> Optional[UserIdentity]:
        if not token:
            return None
        return await run_in_threadpool(self._get_user_sync, token)

    async def sign_out(self, token: str) -> None:
        await run_in_threadpool(self._sign_out_sync, token)
