from enum import Enum


class ConversationOwner(str, Enum):
    BOT = "bot"
    HUMAN = "human"


class OwnershipTrigger(str, Enum):
    ASSISTANT_ESCALATION = "assistant_escalation"
    ASSISTANT_FAILURE = "assistant_failure"
    ASSIGNED_TO_HUMAN = "assigned_to_human"
    OPERATOR_RESOLVED = "operator_resolved"
    ASSIGNED_TO_BOT = "assigned_to_bot"
    RESET = "reset"


# External assignment events and reset are idempotent, so they also loop on their target state.
VALID_TRANSITIONS = {
    ConversationOwner.BOT: {
        OwnershipTrigger.ASSISTANT_ESCALATION: ConversationOwner.HUMAN,
        OwnershipTrigger.ASSISTANT_FAILURE: ConversationOwner.HUMAN,
        OwnershipTrigger.ASSIGNED_TO_HUMAN: ConversationOwner.HUMAN,
        OwnershipTrigger.ASSIGNED_TO_BOT: ConversationOwner.BOT,
        OwnershipTrigger.RESET: ConversationOwner.BOT,
    },
    ConversationOwner.HUMAN: {
        OwnershipTrigger.OPERATOR_RESOLVED: ConversationOwner.BOT,
        OwnershipTrigger.ASSIGNED_TO_BOT: ConversationOwner.BOT,
        OwnershipTrigger.ASSIGNED_TO_HUMAN: ConversationOwner.HUMAN,
        OwnershipTrigger.RESET: ConversationOwner.BOT,
    },
}


class InvalidTransitionError(Exception):
    def __init__(self, from_owner: ConversationOwner, trigger: OwnershipTrigger):
        self.from_owner = from_owner
        self.trigger = trigger
        super().__init__(f"Invalid transition: {from_owner.value} --{trigger.value}-->")


def can_transition(from_owner: ConversationOwner, trigger: OwnershipTrigger) -> bool:
    """Check if the trigger is accepted in the given state."""
    return trigger in VALID_TRANSITIONS.get(from_owner, {})


def transition(from_owner: ConversationOwner, trigger: OwnershipTrigger) -> ConversationOwner:
    """Return the next owner. Raises InvalidTransitionError if the trigger is not allowed."""
    if not can_transition(from_owner, trigger):
        raise InvalidTransitionError(from_owner, trigger)
    return VALID_TRANSITIONS[from_owner][trigger]


def escalate(current: ConversationOwner, *, failure: bool = False) -> ConversationOwner:
    """Hand the conversation to a human after an assistant signal or failure."""
    trigger = OwnershipTrigger.ASSISTANT_FAILURE if failure else OwnershipTrigger.ASSISTANT_ESCALATION
    return transition(current, trigger)


def operator_resolve(current: ConversationOwner) -> ConversationOwner:
    """Operator signalled resolution, return to bot."""
    return transition(current, OwnershipTrigger.OPERATOR_RESOLVED)


def assignment_changed(current: ConversationOwner, assigned_to_bot: bool) -> ConversationOwner:
    trigger = OwnershipTrigger.ASSIGNED_TO_BOT if assigned_to_bot else OwnershipTrigger.ASSIGNED_TO_HUMAN
    return transition(current, trigger)


def reset(current: ConversationOwner) -> ConversationOwner:
    return transition(current, OwnershipTrigger.RESET)
