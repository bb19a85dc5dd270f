import logging
from typing import Any, Dict, List, Mapping, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.database import make_session_factory
from ..core.exceptions import BackendError, NotFoundError
from ..models import Message, Participant, Room, User
from .auth import AuthAPI
from .realtime import INSERT, ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)

# table name -> (model, column holding the user id joined as "user")
TABLES = {
    "users": (User, None),
    "chat_rooms": (Room, "creator_id"),
    "messages": (Message, "sender_id"),
    "room_participants": (Participant, "user_id"),
}

HIDDEN_COLUMNS = {"password_hash"}


def _row_to_dict(row) -> Dict[str, Any]:
    return {
        column.key: getattr(row, column.key)
        for column in row.__table__.columns
        if column.key not in HIDDEN_COLUMNS
    }


class BackendClient:
    """Authenticated CRUD over the chat tables plus a change feed.

    Reads filter by equality, optionally ordered, and can attach the related
    user's ``{username, email}`` under ``"user"``. Inserts are published to
    the feed after commit.
    """

    def __init__(self, engine: Engine, feed: Optional[ChangeFeed] = None):
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        self.auth = AuthAPI(self._session_factory)
        self.feed = feed or ChangeFeed()

    @staticmethod
    def _table(table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise BackendError(f"Unknown table {table!r}") from None

    @staticmethod
    def _column(model, name: str):
        if name not in model.__table__.columns:
            raise BackendError(f"Unknown column {name!r} on {model.__tablename__}")
        return getattr(model, name)

    def _filtered(self, db: Session, model, eq: Optional[Mapping[str, Any]]):
        query = db.query(model)
        for name, value in (eq or {}).items():
            query = query.filter(self._column(model, name) == value)
        return query

    @staticmethod
    def _attach_users(db: Session, records: List[Dict[str, Any]], user_key: str) -> None:
        user_ids = {record[user_key] for record in records}
        if not user_ids:
            return
        users = {
            user.id: {"username": user.username, "email": user.email}
            for user in db.query(User).filter(User.id.in_(user_ids))
        }
        for record in records:
            record["user"] = users.get(record[user_key])

    def _select_sync(self, table, eq, order_by, ascending, with_user) -> List[Dict[str, Any]]:
        model, user_key = self._table(table)
        with self._session_factory() as db:
            try:
                query = self._filtered(db, model, eq)
                if order_by:
                    column = self._column(model, order_by)
                    query = query.order_by(column.asc() if ascending else column.desc())
                records = [_row_to_dict(row) for row in query.all()]
                if with_user and user_key:
                    self._attach_users(db, records, user_key)
                return records
            except SQLAlchemyError as exc:
                raise BackendError(str(exc)) from exc

    def _insert_sync(self, table, values) -> Dict[str, Any]:
        model, _ = self._table(table)
        with self._session_factory() as db:
            try:
                row = model(**values)
            except TypeError as exc:
                raise BackendError(f"Invalid values for {table}: {exc}") from exc
            try:
                db.add(row)
                db.flush()
                record = _row_to_dict(row)
                db.commit()
                return record
            except IntegrityError as exc:
                db.rollback()
                raise BackendError(f"Insert into {table} violates a constraint") from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise BackendError(str(exc)) from exc

    def _delete_sync(self, table, eq) -> int:
        model, _ = self._table(table)
        if not eq:
            raise BackendError("Delete requires at least one filter")
        with self._session_factory() as db:
            try:
                count = self._filtered(db, model, eq).delete(synchronize_session=False)
                db.commit()
                return count
            except IntegrityError as exc:
                db.rollback()
                raise BackendError(f"Delete from {table} violates a constraint") from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise BackendError(str(exc)) from exc

    async def select(self, table: str, *, eq: Optional[Mapping[str, Any]] = None,
                     order_by: Optional[str] = None, ascending: bool = True,
                     with_user: bool = False) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self._select_sync, table, eq, order_by, ascending, with_user)

    async def select_single(self, table: str, *, eq: Mapping[str, Any],
                            with_user: bool = False) -> Dict[str, Any]:
        records = await self.select(table, eq=eq, with_user=with_user)
        if not records:
            raise NotFoundError(f"No row in {table} matches {dict(eq)}")
        if len(records) > 1:
            raise BackendError(f"Expected a single row in {table}, got {len(records)}")
        return records[0]

    async def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        record = await run_in_threadpool(self._insert_sync, table, dict(values))
        delivered = self.feed.publish(ChangeEvent(table=table, type=INSERT, record=dict(record)))
        logger.debug("Inserted into %s, notified %d subscriber(s)", table, delivered)
        return record

    async def delete(self, table: str, *, eq: Mapping[str, Any]) -> int:
        return await run_in_threadpool(self._delete_sync, table, dict(eq))

    def subscribe(self, table: str, *, event: str = INSERT, eq: Optional[Mapping[str, Any]] = None,
                  channel: Optional[str] = None) -> Subscription:
        self._table(table)
        return self.feed.subscribe(table, event=event, eq=eq, channel=channel)
