from unittest.mock import AsyncMock, Mock

import pytest

from relay.schemas.events import EventKind, InboundEvent
from relay.services.ingress import dispatch_event, parse_freshchat_event
from relay.services.orchestrator import OperatorMessageOutcome, UserMessageOutcome
from relay.services.state_machine import ConversationOwner

BOT = "bot-agent"


def message_payload(actor_type, actor_id="u-1", conversation_id="C1", parts=None):
    return {
        "action": "message_create",
        "actor": {"actor_type": actor_type, "actor_id": actor_id},
        "data": {
            "message": {
                "conversation_id": conversation_id,
                "message_parts": parts if parts is not None else [{"text": {"content": "hi"}}],
            }
        },
    }


class TestMessageEvents:
    def test_user_message(self):
        event = parse_freshchat_event(message_payload("user"), bot_agent_id=BOT)

        assert event.event_kind == EventKind.USER_MESSAGE
        assert event.conversation_id == "C1"
        assert event.text == "hi"
        assert event.actor_id == "u-1"

    def test_text_parts_joined(self):
        parts = [{"text": {"content": "first"}}, {"image": {"url": "x"}}, {"text": {"content": "second"}}]

        event = parse_freshchat_event(message_payload("user", parts=parts), bot_agent_id=BOT)

        assert event.text == "first\nsecond"

    def test_agent_message_is_operator_event(self):
        event = parse_freshchat_event(message_payload("agent", actor_id="agent-42"), bot_agent_id=BOT)

        assert event.event_kind == EventKind.OPERATOR_MESSAGE
        assert event.actor_id == "agent-42"

    def test_numeric_ids_kept_as_strings(self):
        event = parse_freshchat_event(message_payload("user", actor_id=17, conversation_id=12345))

        assert event.conversation_id == "12345"
        assert event.actor_id == "17"

    def test_missing_text_dropped(self):
        assert parse_freshchat_event(message_payload("user", parts=[])) is None

    def test_missing_conversation_dropped(self):
        assert parse_freshchat_event(message_payload("user", conversation_id=None)) is None

    def test_system_actor_dropped(self):
        assert parse_freshchat_event(message_payload("system")) is None


class TestOwnershipEvents:
    def test_assignment_to_human(self):
        payload = {
            "action": "conversation_assignment",
            "data": {"assignment": {"conversation_id": "C1", "assigned_agent_id": "agent-42"}},
        }

        event = parse_freshchat_event(payload, bot_agent_id=BOT)

        assert event.event_kind == EventKind.OWNERSHIP_CHANGED
        assert event.conversation_id == "C1"
        assert event.new_owner_is_bot is False

    def test_update_assigned_to_bot(self):
        payload = {
            "action": "conversation_update",
            "data": {"conversation": {"id": "C1", "assigned_agent_id": BOT}},
        }

        event = parse_freshchat_event(payload, bot_agent_id=BOT)

        assert event.new_owner_is_bot is True

    def test_unassigned_counts_as_bot(self):
        payload = {
            "action": "conversation_update",
            "data": {"conversation": {"conversation_id": "C1", "assigned_agent_id": None}},
        }

        event = parse_freshchat_event(payload, bot_agent_id=BOT)

        assert event.new_owner_is_bot is True

    def test_update_without_assignment_dropped(self):
        payload = {"action": "conversation_update", "data": {"conversation": {"id": "C1", "status": "resolved"}}}

        assert parse_freshchat_event(payload, bot_agent_id=BOT) is None


class TestMalformedPayloads:
    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            "text",
            {},
            {"action": "conversation_resolution"},
            {"action": "message_create"},
            {"action": "message_create", "data": "oops"},
            {"action": "message_create", "data": {"message": {"message_parts": "oops"}}},
        ],
    )
    def test_dropped_without_error(self, raw):
        assert parse_freshchat_event(raw, bot_agent_id=BOT) is None


class TestDispatch:
    @pytest.mark.asyncio
    async def test_user_message_routed(self):
        orchestrator = Mock()
        orchestrator.handle_user_message = AsyncMock(return_value=UserMessageOutcome.REPLIED)
        event = InboundEvent(event_kind=EventKind.USER_MESSAGE, conversation_id="C1", text="hi")

        await dispatch_event(orchestrator, event)

        orchestrator.handle_user_message.assert_awaited_once_with("C1", "hi")

    @pytest.mark.asyncio
    async def test_operator_message_routed(self):
        orchestrator = Mock()
        orchestrator.handle_operator_message = AsyncMock(return_value=OperatorMessageOutcome.NO_CHANGE)
        event = InboundEvent(
            event_kind=EventKind.OPERATOR_MESSAGE, conversation_id="C1", actor_id="agent-42", text="done"
        )

        await dispatch_event(orchestrator, event)

        orchestrator.handle_operator_message.assert_awaited_once_with("C1", "agent-42", "done")

    @pytest.mark.asyncio
    async def test_ownership_change_routed(self):
        orchestrator = Mock()
        orchestrator.handle_ownership_changed_event = AsyncMock(return_value=ConversationOwner.HUMAN)
        event = InboundEvent(event_kind=EventKind.OWNERSHIP_CHANGED, conversation_id="C1", new_owner_is_bot=False)

        await dispatch_event(orchestrator, event)

        orchestrator.handle_ownership_changed_event.assert_awaited_once_with("C1", False)

    @pytest.mark.asyncio
    async def test_rejected_ownership_change_logged(self):
        orchestrator = Mock()
        orchestrator.handle_ownership_changed_event = AsyncMock(return_value=None)
        event = InboundEvent(event_kind=EventKind.OWNERSHIP_CHANGED, conversation_id="C1", new_owner_is_bot=True)

        await dispatch_event(orchestrator, event)

        orchestrator.handle_ownership_changed_event.assert_awaited_once_with("C1", True)
