"""Per-message pipeline and bot/human ownership of Freshchat conversations.

The orchestrator is the only writer of the session store and the escalation
registry. Its public operations run detached from the webhook response, so
they never raise: every failure ends up in the logs (and alerts) and is
reported back as an outcome value.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from relay.config import Settings
from relay.logging_config import get_logger
from relay.services import state_machine
from relay.services.alert_service import alert_error, alert_warning
from relay.services.assistant import AssistantClient
from relay.services.errors import AssistantError, AssistantUnavailable, DeliveryFailed, InvalidInput
from relay.services.escalation_detection import detect_escalation, match_resolution
from relay.services.escalation_registry import EscalationRegistry
from relay.services.formatting import clean_reply
from relay.services.messaging import MessagingClient, ProviderOwnership
from relay.services.session_store import SessionStore
from relay.services.state_machine import ConversationOwner, OwnershipTrigger

logger = get_logger("orchestrator")

MSG_CONNECTING = "Let me connect you with a member of our team."
MSG_ESCALATION_NOTICE = "I'm connecting you with a team member who will be with you shortly. 👋"
MSG_FALLBACK = (
    "I apologize, but I'm having trouble processing your request. A team member will assist you shortly."
)
MSG_BACK = "I'm back! How can I help you today? 😊"

SOURCE_ASSISTANT_FAILURE = "assistant_failure"
SOURCE_ASSIGNMENT = "assignment"
SOURCE_PROVIDER_CHECK = "provider_check"


class UserMessageOutcome(str, Enum):
    REPLIED = "replied"
    ESCALATED = "escalated"
    SILENCED = "silenced"
    DEGRADED = "degraded"
    DELIVERY_FAILED = "delivery_failed"
    REJECTED = "rejected"
    FAILED = "failed"


class OperatorMessageOutcome(str, Enum):
    HANDED_BACK = "handed_back"
    NO_CHANGE = "no_change"
    IGNORED = "ignored"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class OrchestratorPolicy:
    bot_agent_id: Optional[str] = None
    escalation_marker: str = "ESCALATE:"
    escalation_keywords: List[str] = field(default_factory=list)
    resolution_keywords: List[str] = field(default_factory=list)
    poll_interval_seconds: float = 1.0
    poll_max_attempts: int = 60
    session_retention: timedelta = timedelta(days=7)
    verify_ownership_with_provider: bool = False
    serialize_conversations: bool = True
    format_replies: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorPolicy":
        return cls(
            bot_agent_id=settings.freshchat_bot_agent_id,
            escalation_marker=settings.escalation_marker,
            escalation_keywords=list(settings.escalation_keywords),
            resolution_keywords=list(settings.resolution_keywords),
            poll_interval_seconds=settings.poll_interval_seconds,
            poll_max_attempts=settings.poll_max_attempts,
            session_retention=timedelta(days=settings.session_retention_days),
            verify_ownership_with_provider=settings.verify_ownership_with_provider,
            serialize_conversations=settings.serialize_conversations,
            format_replies=settings.format_replies,
        )


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = value.strip() if isinstance(value, str) else None
    if not cleaned:
        raise InvalidInput(f"{field_name} must be a non-empty string")
    return cleaned


@dataclass
class _ConversationLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ConversationOrchestrator:
    def __init__(
        self,
        sessions: SessionStore,
        registry: EscalationRegistry,
        assistant: AssistantClient,
        messaging: MessagingClient,
        policy: Optional[OrchestratorPolicy] = None,
    ):
        self.sessions = sessions
        self.registry = registry
        self.assistant = assistant
        self.messaging = messaging
        self.policy = policy or OrchestratorPolicy()
        self._locks: Dict[str, _ConversationLock] = {}

    @asynccontextmanager
    async def _conversation_lock(self, conversation_id: str):
        """Serialize work per conversation; the lock is dropped once nobody holds or awaits it."""
        if not self.policy.serialize_conversations:
            yield
            return

        entry = self._locks.setdefault(conversation_id, _ConversationLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(conversation_id) is entry:
                del self._locks[conversation_id]

    # === USER MESSAGES ===

    async def handle_user_message(self, conversation_id: str, text: str) -> UserMessageOutcome:
        try:
            conversation_id = _require_text(conversation_id, "conversation_id")
            text = _require_text(text, "text")
        except InvalidInput as e:
            logger.warning(f"Rejected user message: {e.message}")
            return UserMessageOutcome.REJECTED

        try:
            async with self._conversation_lock(conversation_id):
                return await self._process_user_message(conversation_id, text)
        except Exception as e:
            logger.exception(
                "User message processing failed",
                extra={"context": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return UserMessageOutcome.FAILED

    async def _process_user_message(self, conversation_id: str, text: str) -> UserMessageOutcome:
        logger.info(
            "Processing user message",
            extra={"context": {"conversation_id": conversation_id, "preview": text[:100]}},
        )

        if await self._is_human_owned(conversation_id):
            logger.info(f"Conversation {conversation_id} is with a human agent, bot stays silent")
            return UserMessageOutcome.SILENCED

        try:
            session_id = await self.sessions.create_or_get(conversation_id, self.assistant.create_session)
            reply = await self.assistant.submit_and_await_reply(
                session_id,
                text,
                poll_interval_seconds=self.policy.poll_interval_seconds,
                max_attempts=self.policy.poll_max_attempts,
            )
        except AssistantError as e:
            return await self._degrade(conversation_id, e)
        except Exception as e:
            logger.exception(
                "Unexpected error while getting assistant reply",
                extra={"context": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return await self._degrade(conversation_id, AssistantUnavailable(f"{type(e).__name__}: {e}"))

        self.sessions.touch(conversation_id)

        signal = detect_escalation(reply.text, self.policy.escalation_marker, self.policy.escalation_keywords)
        outgoing = clean_reply(signal.text) if self.policy.format_replies else signal.text.strip()
        if not outgoing:
            outgoing = MSG_CONNECTING

        try:
            await self.messaging.send_message(conversation_id, outgoing)
        except DeliveryFailed as e:
            logger.error(
                "Assistant reply could not be delivered",
                extra={"context": {"conversation_id": conversation_id, "status": e.status_code, "error": e.message}},
            )
            await alert_error("Reply delivery failed", {"conversation_id": conversation_id, "error": e.message})
            return UserMessageOutcome.DELIVERY_FAILED

        if not signal.escalate:
            return UserMessageOutcome.REPLIED

        logger.info(
            "Escalation detected in assistant reply",
            extra={"context": {"conversation_id": conversation_id, "source": signal.source, "reason": signal.reason}},
        )
        await self._escalate(conversation_id, reason=signal.reason, source=signal.source, notify=True)
        return UserMessageOutcome.ESCALATED

    async def _is_human_owned(self, conversation_id: str) -> bool:
        if self.registry.get(conversation_id) == ConversationOwner.HUMAN:
            return True
        if not self.policy.verify_ownership_with_provider:
            return False

        ownership = await self.messaging.get_current_owner(conversation_id)
        if ownership != ProviderOwnership.HUMAN:
            return False

        self.registry.set_owner(
            conversation_id,
            state_machine.assignment_changed(ConversationOwner.BOT, assigned_to_bot=False),
            reason="assigned to a human agent in Freshchat",
            source=SOURCE_PROVIDER_CHECK,
        )
        return True

    async def _degrade(self, conversation_id: str, error: AssistantError) -> UserMessageOutcome:
        logger.warning(
            "Assistant call failed, falling back to a human",
            extra={"context": {"conversation_id": conversation_id, "code": error.code, "error": error.message}},
        )

        try:
            await self.messaging.send_message(conversation_id, MSG_FALLBACK)
        except DeliveryFailed as e:
            logger.error(
                "Fallback message could not be delivered",
                extra={"context": {"conversation_id": conversation_id, "error": e.message}},
            )
            await alert_error("Fallback delivery failed", {"conversation_id": conversation_id, "error": e.message})

        await self._escalate(conversation_id, reason=error.code, source=SOURCE_ASSISTANT_FAILURE, failure=True)
        await alert_warning(
            "Assistant failure, conversation escalated",
            {"conversation_id": conversation_id, "code": error.code, "error": error.message},
        )
        return UserMessageOutcome.DEGRADED

    async def _escalate(
        self,
        conversation_id: str,
        reason: Optional[str],
        source: Optional[str],
        *,
        failure: bool = False,
        notify: bool = False,
    ) -> None:
        current = self.registry.get(conversation_id)
        trigger = OwnershipTrigger.ASSISTANT_FAILURE if failure else OwnershipTrigger.ASSISTANT_ESCALATION
        if not state_machine.can_transition(current, trigger):
            logger.info(f"Conversation {conversation_id} already owned by {current.value}, skipping escalation")
            return

        # The registry flag is what keeps the bot silent, so it is set before any network call.
        self.registry.set_owner(
            conversation_id,
            state_machine.escalate(current, failure=failure),
            reason=reason,
            source=source,
        )

        if notify:
            try:
                await self.messaging.send_message(conversation_id, MSG_ESCALATION_NOTICE)
            except DeliveryFailed as e:
                logger.error(
                    "Escalation notice could not be delivered",
                    extra={"context": {"conversation_id": conversation_id, "error": e.message}},
                )

        if not await self.messaging.reassign(conversation_id, ConversationOwner.HUMAN):
            logger.warning(f"Reassignment of {conversation_id} failed, bot stays silent anyway")

        logger.info(
            "Conversation escalated",
            extra={"context": {"conversation_id": conversation_id, "reason": reason, "source": source}},
        )

    # === OPERATOR MESSAGES ===

    async def handle_operator_message(
        self,
        conversation_id: str,
        operator_actor_id: Optional[str],
        text: str,
    ) -> OperatorMessageOutcome:
        try:
            conversation_id = _require_text(conversation_id, "conversation_id")
            text = _require_text(text, "text")
        except InvalidInput as e:
            logger.warning(f"Rejected operator message: {e.message}")
            return OperatorMessageOutcome.REJECTED

        # Without an actor id the sender may be the bot itself (anonymous agent sends).
        if not operator_actor_id or operator_actor_id == self.policy.bot_agent_id:
            return OperatorMessageOutcome.IGNORED

        try:
            if self.registry.get(conversation_id) != ConversationOwner.HUMAN:
                return OperatorMessageOutcome.NO_CHANGE

            keyword = match_resolution(text, self.policy.resolution_keywords)
            if not keyword:
                return OperatorMessageOutcome.NO_CHANGE

            logger.info(
                "Operator signalled resolution",
                extra={"context": {"conversation_id": conversation_id, "operator": operator_actor_id, "keyword": keyword}},
            )
            await self._hand_back(conversation_id, OwnershipTrigger.OPERATOR_RESOLVED)
            return OperatorMessageOutcome.HANDED_BACK
        except Exception as e:
            logger.exception(
                "Operator message processing failed",
                extra={"context": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return OperatorMessageOutcome.FAILED

    async def _hand_back(self, conversation_id: str, trigger: OwnershipTrigger) -> bool:
        """Return the conversation to the bot; the assistant session is kept for continuity."""
        current = self.registry.get(conversation_id)
        self.registry.set_owner(conversation_id, state_machine.transition(current, trigger))

        if self.sessions.get(conversation_id):
            logger.info(f"Existing session kept for {conversation_id}, history preserved")

        await self.messaging.reassign(conversation_id, ConversationOwner.BOT)

        try:
            await self.messaging.send_message(conversation_id, MSG_BACK)
        except DeliveryFailed as e:
            logger.error(
                "Hand-back message could not be delivered",
                extra={"context": {"conversation_id": conversation_id, "error": e.message}},
            )
            return False
        return True

    # === OWNERSHIP EVENTS AND COMMANDS ===

    async def handle_ownership_changed_event(
        self,
        conversation_id: str,
        new_owner_is_bot: bool,
    ) -> Optional[ConversationOwner]:
        """Mirror an assignment made in Freshchat into the registry. Idempotent.

        Returns the resulting owner, or None when the event was rejected or failed.
        """
        try:
            conversation_id = _require_text(conversation_id, "conversation_id")
        except InvalidInput as e:
            logger.warning(f"Rejected ownership change: {e.message}")
            return None

        try:
            current = self.registry.get(conversation_id)
            new_owner = state_machine.assignment_changed(current, assigned_to_bot=bool(new_owner_is_bot))
            if new_owner != current:
                self.registry.set_owner(
                    conversation_id,
                    new_owner,
                    reason="reassigned in Freshchat",
                    source=SOURCE_ASSIGNMENT,
                )
                logger.info(f"Conversation {conversation_id} ownership {current.value} -> {new_owner.value}")
            return new_owner
        except Exception as e:
            logger.exception(
                "Ownership change processing failed",
                extra={"context": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return None

    async def return_to_bot(self, conversation_id: str) -> bool:
        """Manual hand-back: mark bot-owned, reassign to the bot agent and greet the user."""
        try:
            if await self.handle_ownership_changed_event(conversation_id, True) is None:
                return False
            await self.messaging.reassign(conversation_id, ConversationOwner.BOT)
            await self.messaging.send_message(conversation_id, MSG_BACK)
            return True
        except Exception as e:
            logger.error(
                "Return to bot failed",
                extra={"context": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return False

    def reset_conversation(self, conversation_id: str) -> Tuple[bool, bool]:
        """Forget session and escalation. Returns (session_cleared, was_escalated)."""
        current = self.registry.get(conversation_id)
        self.registry.set_owner(conversation_id, state_machine.reset(current))
        session_cleared = self.sessions.reset(conversation_id)
        self._locks.pop(conversation_id, None)
        logger.info(
            "Conversation reset",
            extra={"context": {"conversation_id": conversation_id, "was_escalated": current == ConversationOwner.HUMAN}},
        )
        return session_cleared, current == ConversationOwner.HUMAN

    def evict_stale_sessions(self, now: Optional[datetime] = None) -> int:
        retention = self.policy.session_retention
        stale = self.sessions.stale_conversation_ids(retention, now)
        removed = self.sessions.evict_stale(retention, now)
        for conversation_id in stale:
            self.registry.clear(conversation_id)
            self._locks.pop(conversation_id, None)
        if removed:
            logger.info(f"Cleaned up {removed} stale sessions")
        return removed

    def stats(self) -> dict:
        return {
            "active_sessions": self.sessions.count(),
            "escalated_conversations": self.registry.count(),
        }
