from relay.models.conversation_session import ConversationSessionRecord
from relay.models.escalation import EscalationRecord

__all__ = [
    "ConversationSessionRecord",
    "EscalationRecord",
]
