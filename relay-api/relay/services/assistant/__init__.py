from relay.services.assistant.base import AssistantClient, AssistantReply
from relay.services.assistant.openai_assistant import OpenAIAssistantClient

__all__ = ["AssistantClient", "AssistantReply", "OpenAIAssistantClient"]
