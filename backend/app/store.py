import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.app.errors import StorageError
from shared.database import SessionLocal
from shared.models import DiscountAction

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("user_id", "device_type", "city", "region", "age_group", "gender")


class StoreReader:
    """Executes read-only statements against one open session."""

    def __init__(self, session: Session):
        self._session = session

    def fetch(self, statement) -> List[Any]:
        return self._session.execute(statement).all()

    def fetch_one(self, statement) -> Any:
        return self._session.execute(statement).one()


class EventStore:
    """
    Append-only store of discount actions.

    Wraps a session factory so callers can substitute any engine, including
    an in-memory SQLite one. Every SQLAlchemy failure leaves this class as a
    StorageError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except OperationalError as exc:
            session.rollback()
            raise StorageError(f"Event store query failed: {exc.orig}", retryable=True) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Event store error: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def reading(self) -> Iterator[StoreReader]:
        with self._session() as session:
            yield StoreReader(session)

    def record(
        self,
        discount_id: int,
        action: str,
        occurred_at: Optional[datetime] = None,
        **optional: Any,
    ) -> uuid.UUID:
        event_id = uuid.uuid4()
        self.record_many([
            {
                "event_id": event_id,
                "discount_id": discount_id,
                "action": action,
                "occurred_at": occurred_at,
                **optional,
            }
        ])
        return event_id

    def record_many(self, actions: Iterable[Mapping[str, Any]]) -> int:
        """
        Append a batch of actions and return how many rows were written.

        Ids that are already stored, or repeated inside the batch, are skipped
        so that a redelivered message never counts twice.
        """
        rows: Dict[uuid.UUID, DiscountAction] = {}
        for data in actions:
            row = _build_row(data)
            rows.setdefault(row.id, row)

        if not rows:
            return 0

        with self._session() as session:
            existing = set(
                session.scalars(
                    select(DiscountAction.id).where(DiscountAction.id.in_(list(rows)))
                )
            )
            fresh = [row for event_id, row in rows.items() if event_id not in existing]
            session.add_all(fresh)
            session.commit()

        if existing:
            logger.info(f"Skipped {len(existing)} already stored actions")
        return len(fresh)


def _build_row(data: Mapping[str, Any]) -> DiscountAction:
    event_id = data.get("event_id") or uuid.uuid4()
    if isinstance(event_id, str):
        event_id = uuid.UUID(event_id)

    occurred_at = data.get("occurred_at") or datetime.now(timezone.utc)
    if isinstance(occurred_at, str):
        occurred_at = datetime.fromisoformat(occurred_at)

    action = data["action"]
    row = DiscountAction(
        id=event_id,
        discount_id=int(data["discount_id"]),
        action=getattr(action, "value", action),
        occurred_at=occurred_at,
    )
    for field in OPTIONAL_FIELDS:
        value = data.get(field)
        if isinstance(value, str):
            value = value.strip() or None
        if field == "user_id" and value is not None:
            value = int(value)
        setattr(row, field, value)
    return row


def get_store() -> EventStore:
    return EventStore(SessionLocal)
