"""Which conversations a human operator currently owns.

Absence from the registry means the bot owns the conversation, so only
human-owned entries are ever stored.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from relay.models import EscalationRecord
from relay.services.session_store import coerce_utc, utcnow
from relay.services.state_machine import ConversationOwner


@dataclass
class EscalationState:
    conversation_id: str
    owner: ConversationOwner
    reason: Optional[str] = None
    source: Optional[str] = None
    escalated_at: Optional[datetime] = None


class EscalationRegistry(ABC):
    @abstractmethod
    def get_state(self, conversation_id: str) -> Optional[EscalationState]:
        pass

    @abstractmethod
    def set_owner(
        self,
        conversation_id: str,
        owner: ConversationOwner,
        reason: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    def list(self) -> List[str]:
        """Conversation ids currently owned by a human."""
        pass

    def get(self, conversation_id: str) -> ConversationOwner:
        state = self.get_state(conversation_id)
        return state.owner if state else ConversationOwner.BOT

    def clear(self, conversation_id: str) -> None:
        self.set_owner(conversation_id, ConversationOwner.BOT)

    def count(self) -> int:
        return len(self.list())


class InMemoryEscalationRegistry(EscalationRegistry):
    def __init__(self):
        self._escalated: Dict[str, EscalationState] = {}

    def get_state(self, conversation_id: str) -> Optional[EscalationState]:
        return self._escalated.get(conversation_id)

    def set_owner(
        self,
        conversation_id: str,
        owner: ConversationOwner,
        reason: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        if owner == ConversationOwner.BOT:
            self._escalated.pop(conversation_id, None)
            return
        self._escalated[conversation_id] = EscalationState(
            conversation_id=conversation_id,
            owner=ConversationOwner.HUMAN,
            reason=reason,
            source=source,
            escalated_at=utcnow(),
        )

    def list(self) -> List[str]:
        return list(self._escalated.keys())


class SqlEscalationRegistry(EscalationRegistry):
    """Registry persisted in the `escalations` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_state(self, conversation_id: str) -> Optional[EscalationState]:
        with self._session_factory() as db:
            row = db.get(EscalationRecord, conversation_id)
            if not row:
                return None
            return EscalationState(
                conversation_id=row.conversation_id,
                owner=ConversationOwner(row.owner),
                reason=row.reason,
                source=row.source,
                escalated_at=coerce_utc(row.escalated_at),
            )

    def set_owner(
        self,
        conversation_id: str,
        owner: ConversationOwner,
        reason: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        with self._session_factory() as db:
            if owner == ConversationOwner.BOT:
                db.query(EscalationRecord).filter(EscalationRecord.conversation_id == conversation_id).delete()
            else:
                db.merge(
                    EscalationRecord(
                        conversation_id=conversation_id,
                        owner=ConversationOwner.HUMAN.value,
                        reason=reason,
                        source=source,
                        escalated_at=utcnow(),
                    )
                )
            db.commit()

    def list(self) -> List[str]:
        with self._session_factory() as db:
            rows = db.query(EscalationRecord.conversation_id).order_by(EscalationRecord.escalated_at).all()
            return [row[0] for row in rows]

    def count(self) -> int:
        with self._session_factory() as db:
            return db.query(EscalationRecord).count()
