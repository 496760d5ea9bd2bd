import pytest

from relay.services.escalation_registry import InMemoryEscalationRegistry, SqlEscalationRegistry
from relay.services.state_machine import ConversationOwner


@pytest.fixture(params=["memory", "sql"])
def registry(request, session_factory):
    if request.param == "memory":
        return InMemoryEscalationRegistry()
    return SqlEscalationRegistry(session_factory)


class TestEscalationRegistry:
    def test_absent_means_bot(self, registry):
        assert registry.get("C1") == ConversationOwner.BOT
        assert registry.get_state("C1") is None

    def test_set_human_records_reason(self, registry):
        registry.set_owner("C1", ConversationOwner.HUMAN, reason="billing dispute", source="marker")

        state = registry.get_state("C1")
        assert registry.get("C1") == ConversationOwner.HUMAN
        assert state.reason == "billing dispute"
        assert state.source == "marker"
        assert state.escalated_at is not None

    def test_set_bot_removes_entry(self, registry):
        registry.set_owner("C1", ConversationOwner.HUMAN)

        registry.set_owner("C1", ConversationOwner.BOT)

        assert registry.get_state("C1") is None
        assert registry.count() == 0

    def test_clear(self, registry):
        registry.set_owner("C1", ConversationOwner.HUMAN)

        registry.clear("C1")
        registry.clear("never-escalated")

        assert registry.get("C1") == ConversationOwner.BOT

    def test_list_and_count(self, registry):
        registry.set_owner("C1", ConversationOwner.HUMAN)
        registry.set_owner("C2", ConversationOwner.HUMAN)
        registry.set_owner("C3", ConversationOwner.HUMAN)
        registry.clear("C2")

        assert sorted(registry.list()) == ["C1", "C3"]
        assert registry.count() == 2

    def test_overwrite_updates_reason(self, registry):
        registry.set_owner("C1", ConversationOwner.HUMAN, reason="first")
        registry.set_owner("C1", ConversationOwner.HUMAN, reason="second")

        assert registry.get_state("C1").reason == "second"
        assert registry.count() == 1
