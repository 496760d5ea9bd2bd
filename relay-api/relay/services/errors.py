from typing import Optional


class RelayError(Exception):
    code = "relay_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInput(RelayError):
    code = "invalid_input"


class AssistantError(RelayError):
    """Any failure on the assistant side; all of them lead to the degraded path."""

    code = "assistant_error"


class AssistantUnavailable(AssistantError):
    code = "assistant_unavailable"


class AssistantTimeout(AssistantError):
    code = "assistant_timeout"


class AssistantRunFailed(AssistantError):
    code = "assistant_run_failed"


class AssistantEmptyReply(AssistantError):
    code = "assistant_empty_reply"


class DeliveryFailed(RelayError):
    code = "delivery_failed"

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 0):
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class ReassignFailed(RelayError):
    code = "reassign_failed"
