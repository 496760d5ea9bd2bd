from sqlalchemy import Column, Text
from sqlalchemy.types import TIMESTAMP

from relay.database import Base


class EscalationRecord(Base):
    __tablename__ = "escalations"

    conversation_id = Column(Text, primary_key=True)
    owner = Column(Text, nullable=False, default="human")  # only human-owned rows are stored
    reason = Column(Text)
    source = Column(Text)  # marker, keyword, assistant_failure, assignment, provider_check
    escalated_at = Column(TIMESTAMP(timezone=True), nullable=False)
