from typing import Optional

from fastapi import HTTPException, Request

from relay.config import Settings
from relay.database import build_engine, build_session_factory, init_db
from relay.logging_config import get_logger
from relay.services.assistant import OpenAIAssistantClient
from relay.services.escalation_registry import InMemoryEscalationRegistry, SqlEscalationRegistry
from relay.services.messaging import FreshchatClient
from relay.services.orchestrator import ConversationOrchestrator, OrchestratorPolicy
from relay.services.session_store import InMemorySessionStore, SqlSessionStore

logger = get_logger("dependencies")

STORE_MEMORY = "memory"
STORE_DATABASE = "database"


def build_stores(settings: Settings):
    backend = (settings.store_backend or STORE_MEMORY).strip().lower()
    if backend == STORE_DATABASE:
        engine = build_engine(settings.database_url)
        init_db(bind=engine)
        session_factory = build_session_factory(engine)
        logger.info("Using database stores", extra={"context": {"database_url": settings.database_url}})
        return SqlSessionStore(session_factory), SqlEscalationRegistry(session_factory)

    if backend != STORE_MEMORY:
        logger.warning(f"Unknown STORE_BACKEND '{settings.store_backend}', falling back to memory")
    return InMemorySessionStore(), InMemoryEscalationRegistry()


def build_orchestrator(settings: Settings) -> ConversationOrchestrator:
    sessions, registry = build_stores(settings)
    assistant = OpenAIAssistantClient(
        api_key=settings.openai_api_key or "",
        assistant_id=settings.assistant_id or "",
        base_url=settings.openai_api_url,
        organization=settings.openai_org_id,
        project=settings.openai_project_id,
        timeout_seconds=settings.http_timeout_seconds,
    )
    messaging = FreshchatClient(
        api_key=settings.freshchat_api_key or "",
        base_url=settings.freshchat_api_url,
        bot_agent_id=settings.freshchat_bot_agent_id,
        human_agent_id=settings.human_agent_id,
        timeout_seconds=settings.http_timeout_seconds,
        max_attempts=settings.send_max_attempts,
        backoff_seconds=settings.send_backoff_seconds,
    )
    return ConversationOrchestrator(
        sessions=sessions,
        registry=registry,
        assistant=assistant,
        messaging=messaging,
        policy=OrchestratorPolicy.from_settings(settings),
    )


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Relay not initialized")
    return orchestrator


def get_orchestrator_if_ready(request: Request) -> Optional[ConversationOrchestrator]:
    """Like get_orchestrator, but None before startup has finished."""
    return getattr(request.app.state, "orchestrator", None)
