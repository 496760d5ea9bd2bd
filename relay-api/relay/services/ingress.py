"""Translate Freshchat webhook payloads into InboundEvents and route them."""

from typing import Any, Optional

from pydantic import ValidationError

from relay.logging_config import get_logger
from relay.schemas.events import EventKind, InboundEvent
from relay.schemas.freshchat import FreshchatWebhookPayload
from relay.services.orchestrator import ConversationOrchestrator

logger = get_logger("ingress")

ACTION_MESSAGE_CREATE = "message_create"
ACTION_CONVERSATION_ASSIGNMENT = "conversation_assignment"
ACTION_CONVERSATION_UPDATE = "conversation_update"

ACTOR_USER = "user"
ACTOR_AGENT = "agent"


def _ownership_event(payload: FreshchatWebhookPayload, bot_agent_id: Optional[str]) -> Optional[InboundEvent]:
    data = payload.data
    if data is None:
        return None
    conversation = data.conversation
    assignment = data.assignment

    conversation_id = (conversation.id if conversation else None) or (
        assignment.conversation_id if assignment else None
    )

    # An assignment event only counts when the payload actually carries the agent field.
    assignment_present = False
    assigned_agent_id = None
    if conversation and "assigned_agent_id" in conversation.model_fields_set:
        assignment_present = True
        assigned_agent_id = conversation.assigned_agent_id
    if not assigned_agent_id and assignment and "assigned_agent_id" in assignment.model_fields_set:
        assignment_present = True
        assigned_agent_id = assignment.assigned_agent_id

    if not conversation_id or not assignment_present:
        logger.info(f"Ignoring {payload.action}: no conversation id or assignment")
        return None

    return InboundEvent(
        event_kind=EventKind.OWNERSHIP_CHANGED,
        conversation_id=conversation_id,
        actor_type=payload.actor.actor_type if payload.actor else None,
        actor_id=assigned_agent_id,
        new_owner_is_bot=not assigned_agent_id or assigned_agent_id == bot_agent_id,
    )


def _message_event(payload: FreshchatWebhookPayload) -> Optional[InboundEvent]:
    message = payload.data.message if payload.data else None
    actor = payload.actor
    actor_type = (actor.actor_type if actor else None) or (message.actor_type if message else None)
    actor_id = (actor.actor_id if actor else None) or (message.actor_id if message else None)

    if actor_type == ACTOR_USER:
        kind = EventKind.USER_MESSAGE
    elif actor_type == ACTOR_AGENT:
        kind = EventKind.OPERATOR_MESSAGE
    else:
        logger.info(f"Ignoring message_create from actor_type={actor_type}")
        return None

    text = message.text_content() if message else ""
    if not message or not message.conversation_id or not text:
        logger.warning("Missing conversation ID or message content")
        return None

    return InboundEvent(
        event_kind=kind,
        conversation_id=message.conversation_id,
        actor_type=actor_type,
        actor_id=actor_id,
        text=text,
    )


def parse_freshchat_event(raw: Any, bot_agent_id: Optional[str] = None) -> Optional[InboundEvent]:
    """Normalize one Freshchat webhook body. Returns None for anything not actionable."""
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring webhook with non-object body: {type(raw).__name__}")
        return None

    try:
        payload = FreshchatWebhookPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Unparseable webhook payload: {e.error_count()} errors")
        return None

    logger.info(
        "Webhook received",
        extra={
            "context": {
                "action": payload.action,
                "actor_type": payload.actor.actor_type if payload.actor else None,
                "actor_id": payload.actor.actor_id if payload.actor else None,
                "has_data": payload.data is not None,
            }
        },
    )

    if payload.action in (ACTION_CONVERSATION_ASSIGNMENT, ACTION_CONVERSATION_UPDATE):
        return _ownership_event(payload, bot_agent_id)
    if payload.action == ACTION_MESSAGE_CREATE:
        return _message_event(payload)

    logger.info(f"Ignoring webhook: action={payload.action}")
    return None


async def dispatch_event(orchestrator: ConversationOrchestrator, event: InboundEvent) -> None:
    if event.event_kind == EventKind.USER_MESSAGE:
        outcome = await orchestrator.handle_user_message(event.conversation_id, event.text)
    elif event.event_kind == EventKind.OPERATOR_MESSAGE:
        outcome = await orchestrator.handle_operator_message(event.conversation_id, event.actor_id, event.text)
    else:
        outcome = await orchestrator.handle_ownership_changed_event(
            event.conversation_id, bool(event.new_owner_is_bot)
        )

    logger.info(
        "Event processed",
        extra={
            "context": {
                "conversation_id": event.conversation_id,
                "event_kind": event.event_kind.value,
                "outcome": outcome.value if outcome is not None else None,
            }
        },
    )
