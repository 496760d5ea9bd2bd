"""Mapping of Freshchat conversations to assistant sessions (OpenAI threads)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from relay.logging_config import get_logger
from relay.models import ConversationSessionRecord

logger = get_logger("session_store")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ConversationSession:
    conversation_id: str
    assistant_session_id: str
    last_activity_at: datetime


class SessionStore(ABC):
    """Keyed store of live assistant sessions.

    Every method is a single mutation or read. `record` never replaces an
    existing mapping: a conversation gets a new session only after `reset`
    or eviction removed the old one.
    """

    @abstractmethod
    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        pass

    @abstractmethod
    def record(self, conversation_id: str, assistant_session_id: str) -> ConversationSession:
        """Store a new mapping; returns the mapping that ends up stored."""
        pass

    @abstractmethod
    def touch(self, conversation_id: str) -> bool:
        pass

    @abstractmethod
    def reset(self, conversation_id: str) -> bool:
        pass

    @abstractmethod
    def stale_conversation_ids(self, max_age: timedelta, now: Optional[datetime] = None) -> List[str]:
        pass

    @abstractmethod
    def evict_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Remove sessions idle for longer than max_age. Returns the number removed."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def list_sessions(self) -> List[ConversationSession]:
        pass

    async def create_or_get(
        self,
        conversation_id: str,
        allocate: Callable[[], Awaitable[str]],
    ) -> str:
        """Return the conversation's session id, allocating one on first use."""
        existing = self.get(conversation_id)
        if existing:
            self.touch(conversation_id)
            logger.info(
                "Reusing assistant session",
                extra={"context": {"conversation_id": conversation_id, "session_id": existing.assistant_session_id}},
            )
            return existing.assistant_session_id

        session_id = await allocate()
        stored = self.record(conversation_id, session_id)
        if stored.assistant_session_id != session_id:
            logger.warning(
                f"Discarding concurrently allocated session {session_id} for conversation {conversation_id}"
            )
        else:
            logger.info(
                "Created assistant session",
                extra={"context": {"conversation_id": conversation_id, "session_id": session_id}},
            )
        return stored.assistant_session_id


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, ConversationSession] = {}

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(conversation_id)

    def record(self, conversation_id: str, assistant_session_id: str) -> ConversationSession:
        return self._sessions.setdefault(
            conversation_id,
            ConversationSession(conversation_id, assistant_session_id, utcnow()),
        )

    def touch(self, conversation_id: str) -> bool:
        session = self._sessions.get(conversation_id)
        if not session:
            return False
        session.last_activity_at = utcnow()
        return True

    def reset(self, conversation_id: str) -> bool:
        return self._sessions.pop(conversation_id, None) is not None

    def stale_conversation_ids(self, max_age: timedelta, now: Optional[datetime] = None) -> List[str]:
        cutoff = (now or utcnow()) - max_age
        return [cid for cid, session in self._sessions.items() if session.last_activity_at < cutoff]

    def evict_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        stale = self.stale_conversation_ids(max_age, now)
        for conversation_id in stale:
            self._sessions.pop(conversation_id, None)
        return len(stale)

    def count(self) -> int:
        return len(self._sessions)

    def list_sessions(self) -> List[ConversationSession]:
        return list(self._sessions.values())


class SqlSessionStore(SessionStore):
    """Session store persisted in the `conversation_sessions` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_session(row: ConversationSessionRecord) -> ConversationSession:
        return ConversationSession(
            conversation_id=row.conversation_id,
            assistant_session_id=row.assistant_session_id,
            last_activity_at=coerce_utc(row.last_activity_at),
        )

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        with self._session_factory() as db:
            row = db.get(ConversationSessionRecord, conversation_id)
            return self._to_session(row) if row else None

    def record(self, conversation_id: str, assistant_session_id: str) -> ConversationSession:
        now = utcnow()
        with self._session_factory() as db:
            row = db.get(ConversationSessionRecord, conversation_id)
            if row:
                return self._to_session(row)
            row = ConversationSessionRecord(
                conversation_id=conversation_id,
                assistant_session_id=assistant_session_id,
                created_at=now,
                last_activity_at=now,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                row = db.get(ConversationSessionRecord, conversation_id)
            return self._to_session(row)

    def touch(self, conversation_id: str) -> bool:
        with self._session_factory() as db:
            updated = (
                db.query(ConversationSessionRecord)
                .filter(ConversationSessionRecord.conversation_id == conversation_id)
                .update({ConversationSessionRecord.last_activity_at: utcnow()})
            )
            db.commit()
            return updated > 0

    def reset(self, conversation_id: str) -> bool:
        with self._session_factory() as db:
            deleted = (
                db.query(ConversationSessionRecord)
                .filter(ConversationSessionRecord.conversation_id == conversation_id)
                .delete()
            )
            db.commit()
            return deleted > 0

    def stale_conversation_ids(self, max_age: timedelta, now: Optional[datetime] = None) -> List[str]:
        cutoff = (now or utcnow()) - max_age
        with self._session_factory() as db:
            rows = db.query(ConversationSessionRecord).all()
            return [row.conversation_id for row in rows if coerce_utc(row.last_activity_at) < cutoff]

    def evict_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        stale = self.stale_conversation_ids(max_age, now)
        if not stale:
            return 0
        with self._session_factory() as db:
            deleted = (
                db.query(ConversationSessionRecord)
                .filter(ConversationSessionRecord.conversation_id.in_(stale))
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted

    def count(self) -> int:
        with self._session_factory() as db:
            return db.query(ConversationSessionRecord).count()

    def list_sessions(self) -> List[ConversationSession]:
        with self._session_factory() as db:
            rows = db.query(ConversationSessionRecord).order_by(ConversationSessionRecord.last_activity_at).all()
            return [self._to_session(row) for row in rows]
