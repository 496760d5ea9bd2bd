import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from relay.dependencies import get_orchestrator_if_ready
from relay.logging_config import get_logger
from relay.services.ingress import dispatch_event, parse_freshchat_event
from relay.services.orchestrator import ConversationOrchestrator

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])


@router.post("/freshchat-webhook")
@router.post("/webhook")
async def freshchat_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: Optional[ConversationOrchestrator] = Depends(get_orchestrator_if_ready),
):
    """Acknowledge immediately; the event is processed after the response is sent."""
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Webhook body is not valid JSON: {e}")
        return {"success": True}

    if orchestrator is None:
        logger.warning("Webhook received before startup finished, event dropped")
        return {"success": True}

    event = parse_freshchat_event(raw, bot_agent_id=orchestrator.policy.bot_agent_id)
    if event is not None:
        background_tasks.add_task(dispatch_event, orchestrator, event)
    return {"success": True}
