from relay.services.orchestrator import (
    ConversationOrchestrator,
    OperatorMessageOutcome,
    OrchestratorPolicy,
    UserMessageOutcome,
)
from relay.services.state_machine import ConversationOwner

__all__ = [
    "ConversationOrchestrator",
    "OrchestratorPolicy",
    "UserMessageOutcome",
    "OperatorMessageOutcome",
    "ConversationOwner",
]
