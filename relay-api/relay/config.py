from typing import List, Optional

from pydantic_settings import BaseSettings

DEFAULT_ESCALATION_KEYWORDS = [
    "connect you with my manager",
    "connect you with a manager",
    "speak to my manager",
    "talk to my manager",
    "escalate",
    "human agent",
    "real person",
]

DEFAULT_RESOLUTION_KEYWORDS = [
    "resolved",
    "handled",
    "done",
    "completed",
    "sorted",
    "fixed",
    "all set",
    "taken care of",
    "back to bot",
    "return to bot",
    "handing back",
    "transferring back",
]


class Settings(BaseSettings):
    # Freshchat
    freshchat_api_key: Optional[str] = None
    freshchat_api_url: str = "https://api.freshchat.com/v2"
    freshchat_bot_agent_id: Optional[str] = None
    human_agent_id: Optional[str] = None

    # OpenAI Assistants
    openai_api_key: Optional[str] = None
    openai_api_url: str = "https://api.openai.com/v1"
    openai_org_id: Optional[str] = None
    openai_project_id: Optional[str] = None
    assistant_id: Optional[str] = None

    # Stores
    store_backend: str = "memory"  # memory, database
    database_url: str = "sqlite:///./relay.db"
    session_retention_days: int = 7
    eviction_interval_seconds: float = 3600
    eviction_worker_enabled: bool = True

    # Assistant polling and outbound delivery
    poll_interval_seconds: float = 1.0
    poll_max_attempts: int = 60
    http_timeout_seconds: float = 10.0
    send_max_attempts: int = 3
    send_backoff_seconds: float = 1.0

    # Conversation policy
    verify_ownership_with_provider: bool = True
    serialize_conversations: bool = True
    format_replies: bool = True
    escalation_marker: str = "ESCALATE:"
    escalation_keywords: List[str] = DEFAULT_ESCALATION_KEYWORDS
    resolution_keywords: List[str] = DEFAULT_RESOLUTION_KEYWORDS

    # Ops
    admin_token: Optional[str] = None
    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    def missing_required(self) -> list[str]:
        """Names of settings the relay cannot work without."""
        required = {
            "FRESHCHAT_API_KEY": self.freshchat_api_key,
            "OPENAI_API_KEY": self.openai_api_key,
            "ASSISTANT_ID": self.assistant_id,
        }
        return [name for name, value in required.items() if not value]


settings = Settings()
