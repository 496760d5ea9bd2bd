"""Operator endpoints for inspecting and correcting conversation ownership."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from relay.config import settings
from relay.dependencies import get_orchestrator
from relay.logging_config import get_logger
from relay.schemas.admin import (
    EscalatedResponse,
    EscalationItem,
    EvictResponse,
    HealResponse,
    ResetResponse,
    ReturnToBotResponse,
    SessionItem,
    SessionsResponse,
    TestMessageRequest,
    TestMessageResponse,
)
from relay.services.health_service import reconcile_escalations
from relay.services.orchestrator import ConversationOrchestrator

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# === INSPECTION ===


@router.get("/escalated", response_model=EscalatedResponse)
async def list_escalated(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    items = []
    for conversation_id in orchestrator.registry.list():
        state = orchestrator.registry.get_state(conversation_id)
        if state is None:
            continue
        items.append(
            EscalationItem(
                conversation_id=state.conversation_id,
                reason=state.reason,
                source=state.source,
                escalated_at=state.escalated_at,
            )
        )
    return EscalatedResponse(count=len(items), conversations=items)


@router.get("/sessions", response_model=SessionsResponse)
async def list_sessions(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    sessions = [
        SessionItem(
            conversation_id=session.conversation_id,
            assistant_session_id=session.assistant_session_id,
            last_activity_at=session.last_activity_at,
            owner=orchestrator.registry.get(session.conversation_id).value,
        )
        for session in orchestrator.sessions.list_sessions()
    ]
    return SessionsResponse(count=len(sessions), sessions=sessions)


# === OWNERSHIP COMMANDS ===


@router.post("/conversations/{conversation_id}/reset", response_model=ResetResponse)
async def reset_conversation(
    conversation_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    session_cleared, was_escalated = orchestrator.reset_conversation(conversation_id)
    return ResetResponse(
        success=True,
        conversation_id=conversation_id,
        session_cleared=session_cleared,
        was_escalated=was_escalated,
    )


@router.post("/conversations/{conversation_id}/return-to-bot", response_model=ReturnToBotResponse)
async def return_to_bot(
    conversation_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    success = await orchestrator.return_to_bot(conversation_id)
    return ReturnToBotResponse(
        success=success,
        conversation_id=conversation_id,
        owner=orchestrator.registry.get(conversation_id).value,
    )


@router.post("/test-message", response_model=TestMessageResponse)
async def test_message(
    data: TestMessageRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Run a user message through the full pipeline and report what happened."""
    _require_admin_token(x_admin_token)
    if not data.conversation_id.strip() or not data.message.strip():
        raise HTTPException(status_code=400, detail="conversation_id and message are required")

    outcome = await orchestrator.handle_user_message(data.conversation_id, data.message)
    session = orchestrator.sessions.get(data.conversation_id)
    logger.info(
        "Test message processed",
        extra={"context": {"conversation_id": data.conversation_id, "outcome": outcome.value}},
    )
    return TestMessageResponse(
        success=True,
        conversation_id=data.conversation_id,
        outcome=outcome.value,
        owner=orchestrator.registry.get(data.conversation_id).value,
        assistant_session_id=session.assistant_session_id if session else None,
    )


# === MAINTENANCE ===


@router.post("/evict", response_model=EvictResponse)
async def evict_stale_sessions(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    return EvictResponse(success=True, evicted=orchestrator.evict_stale_sessions())


@router.post("/heal", response_model=HealResponse)
async def heal_escalations(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Clear escalations that Freshchat already handed back to the bot."""
    _require_admin_token(x_admin_token)
    result = await reconcile_escalations(orchestrator)
    return HealResponse(success=True, checked=result["checked"], cleared=result["cleared"], kept=result["kept"])
