from datetime import datetime, timezone
from typing import Optional

from relay.config import Settings
from relay.logging_config import get_logger
from relay.services.messaging import ProviderOwnership
from relay.services.orchestrator import ConversationOrchestrator

logger = get_logger("health_service")

VERSION = "0.1.0"


def get_system_health(
    orchestrator: Optional[ConversationOrchestrator],
    settings: Settings,
    started_at: Optional[datetime] = None,
) -> dict:
    """Liveness plus configuration presence flags and store counts."""
    now = datetime.now(timezone.utc)
    missing = settings.missing_required()

    health = {
        "status": "ok" if orchestrator is not None and not missing else "degraded",
        "version": VERSION,
        "config": {
            "freshchat_api_key": bool(settings.freshchat_api_key),
            "openai_api_key": bool(settings.openai_api_key),
            "assistant_id": bool(settings.assistant_id),
            "bot_agent_id": bool(settings.freshchat_bot_agent_id),
            "human_agent_id": bool(settings.human_agent_id),
            "store_backend": settings.store_backend,
        },
        "missing": missing,
        "checked_at": now.isoformat(),
    }
    if orchestrator is not None:
        health["stats"] = orchestrator.stats()
    if started_at is not None:
        health["uptime_seconds"] = int((now - started_at).total_seconds())
    return health


async def reconcile_escalations(orchestrator: ConversationOrchestrator) -> dict:
    """Clear HUMAN registry entries whose Freshchat conversation is back with the bot.

    UNKNOWN provider answers leave the entry alone.
    """
    cleared = []
    kept = []
    escalated = orchestrator.registry.list()

    for conversation_id in escalated:
        ownership = await orchestrator.messaging.get_current_owner(conversation_id)
        if ownership == ProviderOwnership.BOT and await orchestrator.handle_ownership_changed_event(
            conversation_id, True
        ):
            cleared.append(conversation_id)
            logger.warning(f"Healed conversation {conversation_id}: escalated but bot-owned in Freshchat")
        else:
            kept.append(conversation_id)

    return {
        "checked": len(escalated),
        "cleared": cleared,
        "kept": kept,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
