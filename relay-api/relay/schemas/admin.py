from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class EscalationItem(BaseModel):
    conversation_id: str
    reason: Optional[str] = None
    source: Optional[str] = None
    escalated_at: Optional[datetime] = None


class EscalatedResponse(BaseModel):
    count: int
    conversations: List[EscalationItem]


class SessionItem(BaseModel):
    conversation_id: str
    assistant_session_id: str
    last_activity_at: datetime
    owner: str


class SessionsResponse(BaseModel):
    count: int
    sessions: List[SessionItem]


class ResetResponse(BaseModel):
    success: bool
    conversation_id: str
    session_cleared: bool
    was_escalated: bool


class ReturnToBotResponse(BaseModel):
    success: bool
    conversation_id: str
    owner: str


class TestMessageRequest(BaseModel):
    conversation_id: str
    message: str


class TestMessageResponse(BaseModel):
    success: bool
    conversation_id: str
    outcome: str
    owner: str
    assistant_session_id: Optional[str] = None


class EvictResponse(BaseModel):
    success: bool
    evicted: int


class HealResponse(BaseModel):
    success: bool
    checked: int
    cleared: List[str]
    kept: List[str]
