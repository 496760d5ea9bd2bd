"""Tolerant models of the Freshchat webhook payload.

Every field is optional; unknown fields are ignored. Numeric ids are
accepted and kept as strings.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class FreshchatModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class FreshchatTextPart(FreshchatModel):
    content: Optional[str] = None


class FreshchatMessagePart(FreshchatModel):
    text: Optional[FreshchatTextPart] = None


class FreshchatActor(FreshchatModel):
    actor_type: Optional[str] = None
    actor_id: Optional[str] = None


class FreshchatMessage(FreshchatModel):
    conversation_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
    )
    actor_type: Optional[str] = None
    actor_id: Optional[str] = None
    message_parts: List[FreshchatMessagePart] = Field(default_factory=list)

    def text_content(self) -> str:
        parts = [part.text.content for part in self.message_parts if part.text and part.text.content]
        return "\n".join(parts).strip()


class FreshchatConversation(FreshchatModel):
    id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("id", "conversation_id", "conversationId"),
    )
    assigned_agent_id: Optional[str] = None


class FreshchatAssignment(FreshchatModel):
    conversation_id: Optional[str] = None
    assigned_agent_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("assigned_agent_id", "to_agent_id"),
    )


class FreshchatData(FreshchatModel):
    message: Optional[FreshchatMessage] = None
    conversation: Optional[FreshchatConversation] = None
    assignment: Optional[FreshchatAssignment] = None


class FreshchatWebhookPayload(FreshchatModel):
    action: Optional[str] = None
    actor: Optional[FreshchatActor] = None
    data: Optional[FreshchatData] = None
