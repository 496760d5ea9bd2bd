from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EventKind(str, Enum):
    USER_MESSAGE = "user_message"
    OPERATOR_MESSAGE = "operator_message"
    OWNERSHIP_CHANGED = "ownership_changed"


class InboundEvent(BaseModel):
    """Provider-independent event handed to the orchestrator."""

    event_kind: EventKind
    conversation_id: str
    actor_type: Optional[str] = None
    actor_id: Optional[str] = None
    text: Optional[str] = None
    new_owner_is_bot: Optional[bool] = None
