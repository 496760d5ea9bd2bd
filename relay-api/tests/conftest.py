from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from relay.config import DEFAULT_ESCALATION_KEYWORDS, DEFAULT_RESOLUTION_KEYWORDS
from relay.database import build_engine, build_session_factory, init_db
from relay.services.assistant import AssistantClient, AssistantReply
from relay.services.errors import DeliveryFailed
from relay.services.escalation_registry import InMemoryEscalationRegistry
from relay.services.messaging import MessagingClient, ProviderOwnership
from relay.services.orchestrator import ConversationOrchestrator, OrchestratorPolicy
from relay.services.session_store import InMemorySessionStore

BOT_AGENT_ID = "bot-agent"
HUMAN_AGENT_ID = "human-agent"


class FakeAssistantClient(AssistantClient):
    """Scripted assistant: replies are consumed in order, `error` is raised on submit."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.sessions_created = 0
        self.submissions = []

    async def create_session(self) -> str:
        self.sessions_created += 1
        return f"thread_{self.sessions_created}"

    async def submit_and_await_reply(self, session_id, text, poll_interval_seconds=1.0, max_attempts=60):
        self.submissions.append((session_id, text))
        if self.error is not None:
            raise self.error
        reply = self.replies.pop(0) if self.replies else "Hello! How can I help?"
        return AssistantReply(text=reply, session_id=session_id, run_id="run_1", attempts=1)


class FakeMessagingClient(MessagingClient):
    """Records outbound calls. Sends whose text is in `fail_texts` (or all, with fail_all) raise."""

    def __init__(self, provider_owner=ProviderOwnership.BOT, reassign_ok=True, fail_all=False, fail_texts=None):
        self.provider_owner = provider_owner
        self.reassign_ok = reassign_ok
        self.fail_all = fail_all
        self.fail_texts = set(fail_texts or [])
        self.sent = []
        self.reassigned = []
        self.owner_checks = []

    async def send_message(self, conversation_id, text):
        if self.fail_all or text in self.fail_texts:
            raise DeliveryFailed(f"delivery failed for {conversation_id}", status_code=503, attempts=3)
        self.sent.append((conversation_id, text))

    async def reassign(self, conversation_id, owner):
        self.reassigned.append((conversation_id, owner))
        return self.reassign_ok

    async def get_current_owner(self, conversation_id):
        self.owner_checks.append(conversation_id)
        return self.provider_owner


@pytest.fixture(autouse=True)
def silence_alerts():
    """Alerts must never reach Telegram from tests."""
    with patch("relay.services.orchestrator.alert_error", new=AsyncMock(return_value=False)) as error, patch(
        "relay.services.orchestrator.alert_warning", new=AsyncMock(return_value=False)
    ) as warning:
        yield {"error": error, "warning": warning}


@pytest.fixture
def policy():
    return OrchestratorPolicy(
        bot_agent_id=BOT_AGENT_ID,
        escalation_marker="ESCALATE:",
        escalation_keywords=list(DEFAULT_ESCALATION_KEYWORDS),
        resolution_keywords=list(DEFAULT_RESOLUTION_KEYWORDS),
        poll_interval_seconds=0,
        poll_max_attempts=3,
        session_retention=timedelta(days=7),
        verify_ownership_with_provider=False,
    )


@pytest.fixture
def assistant():
    return FakeAssistantClient()


@pytest.fixture
def messaging():
    return FakeMessagingClient()


@pytest.fixture
def orchestrator(assistant, messaging, policy):
    return ConversationOrchestrator(
        sessions=InMemorySessionStore(),
        registry=InMemoryEscalationRegistry(),
        assistant=assistant,
        messaging=messaging,
        policy=policy,
    )


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()
