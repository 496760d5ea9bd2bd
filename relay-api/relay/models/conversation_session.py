from sqlalchemy import Column, Text
from sqlalchemy.types import TIMESTAMP

from relay.database import Base


class ConversationSessionRecord(Base):
    __tablename__ = "conversation_sessions"

    conversation_id = Column(Text, primary_key=True)
    assistant_session_id = Column(Text, nullable=False)  # OpenAI thread id
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    last_activity_at = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
