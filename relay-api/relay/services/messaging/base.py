from abc import ABC, abstractmethod
from enum import Enum

from relay.services.state_machine import ConversationOwner


class ProviderOwnership(str, Enum):
    BOT = "bot"
    HUMAN = "human"
    UNKNOWN = "unknown"


class MessagingClient(ABC):
    """Outbound side of the customer-messaging platform."""

    @abstractmethod
    async def send_message(self, conversation_id: str, text: str) -> None:
        """Send text into the conversation. Raises DeliveryFailed after retries."""
        pass

    @abstractmethod
    async def reassign(self, conversation_id: str, owner: ConversationOwner) -> bool:
        """Best-effort reassignment. Never raises; returns False on failure."""
        pass

    @abstractmethod
    async def get_current_owner(self, conversation_id: str) -> ProviderOwnership:
        pass

    async def probe_capabilities(self) -> str:
        """Pin the outbound payload schema once at startup. Returns its name."""
        return "default"

    async def aclose(self) -> None:
        pass
