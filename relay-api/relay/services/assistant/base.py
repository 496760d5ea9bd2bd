from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class AssistantReply:
    text: str
    session_id: str
    run_id: Optional[str] = None
    attempts: int = 0


class AssistantClient(ABC):
    """Abstract base class for hosted assistants with server-side sessions."""

    @abstractmethod
    async def create_session(self) -> str:
        """Allocate a new session. Raises AssistantUnavailable."""
        pass

    @abstractmethod
    async def submit_and_await_reply(
        self,
        session_id: str,
        text: str,
        poll_interval_seconds: float = 1.0,
        max_attempts: int = 60,
    ) -> AssistantReply:
        """Submit a user message and wait for the reply.

        Raises AssistantTimeout, AssistantRunFailed, AssistantEmptyReply or
        AssistantUnavailable.
        """
        pass

    async def aclose(self) -> None:
        pass
