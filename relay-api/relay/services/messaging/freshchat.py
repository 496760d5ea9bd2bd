import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from relay.logging_config import get_logger
from relay.services.errors import DeliveryFailed, ReassignFailed
from relay.services.messaging.base import MessagingClient, ProviderOwnership
from relay.services.state_machine import ConversationOwner

logger = get_logger("messaging.freshchat")

# Message posted as the bot agent; needs an agent id Freshchat can resolve.
SCHEMA_AGENT_ACTOR = "agent_actor"
# Documented fallback: posted as an anonymous agent.
SCHEMA_ANONYMOUS_AGENT = "anonymous_agent"


class FreshchatClient(MessagingClient):
    """Freshchat Conversations API v2."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.freshchat.com/v2",
        bot_agent_id: Optional[str] = None,
        human_agent_id: Optional[str] = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.bot_agent_id = bot_agent_id
        self.human_agent_id = human_agent_id
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.payload_schema = SCHEMA_AGENT_ACTOR if bot_agent_id else SCHEMA_ANONYMOUS_AGENT
        self._sleep = sleep_func
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def probe_capabilities(self) -> str:
        """Resolve the bot agent once; fall back to anonymous agent messages if it is unknown."""
        if not self.bot_agent_id:
            self.payload_schema = SCHEMA_ANONYMOUS_AGENT
            logger.warning("FRESHCHAT_BOT_AGENT_ID not set, messages will be sent as anonymous agent")
            return self.payload_schema

        try:
            response = await self._client.get(f"/agents/{self.bot_agent_id}")
            resolved = response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Freshchat capability probe failed: {e}")
            resolved = False

        self.payload_schema = SCHEMA_AGENT_ACTOR if resolved else SCHEMA_ANONYMOUS_AGENT
        logger.info(
            "Freshchat payload schema pinned",
            extra={"context": {"schema": self.payload_schema, "bot_agent_id": self.bot_agent_id}},
        )
        return self.payload_schema

    def build_message_payload(self, text: str) -> dict:
        payload = {
            "message_parts": [{"text": {"content": text}}],
            "message_type": "normal",
            "actor_type": "agent",
        }
        if self.payload_schema == SCHEMA_AGENT_ACTOR and self.bot_agent_id:
            payload["actor_id"] = self.bot_agent_id
        return payload

    async def send_message(self, conversation_id: str, text: str) -> None:
        payload = self.build_message_payload(text)
        url = f"/conversations/{conversation_id}/messages"

        for attempt in range(1, self.max_attempts + 1):
            status_code = None
            try:
                response = await self._client.post(url, json=payload)
            except httpx.TransportError as e:
                retryable = True
                error = str(e) or e.__class__.__name__
            else:
                if response.status_code < 300:
                    logger.info(
                        "Message delivered",
                        extra={"context": {"conversation_id": conversation_id, "attempt": attempt}},
                    )
                    return
                status_code = response.status_code
                retryable = status_code >= 500
                error = response.text[:200]

            logger.warning(
                f"Send failed (attempt {attempt}/{self.max_attempts})",
                extra={"context": {"conversation_id": conversation_id, "status": status_code, "error": error}},
            )
            if not retryable or attempt == self.max_attempts:
                raise DeliveryFailed(
                    f"Freshchat delivery failed for {conversation_id}: {status_code or error}",
                    status_code=status_code,
                    attempts=attempt,
                )
            await self._sleep(self.backoff_seconds * 2 ** (attempt - 1))

    async def _put_assignment(self, conversation_id: str, agent_id: str) -> None:
        try:
            response = await self._client.put(
                f"/conversations/{conversation_id}",
                json={"assigned_agent_id": agent_id, "status": "assigned"},
            )
        except httpx.HTTPError as e:
            raise ReassignFailed(f"Reassign request failed: {e}") from e
        if response.status_code >= 300:
            raise ReassignFailed(f"Reassign rejected: {response.status_code} - {response.text[:200]}")

    async def reassign(self, conversation_id: str, owner: ConversationOwner) -> bool:
        agent_id = self.bot_agent_id if owner == ConversationOwner.BOT else self.human_agent_id
        if not agent_id:
            logger.warning(f"No agent id configured for {owner.value}, skipping reassignment of {conversation_id}")
            return False

        try:
            await self._put_assignment(conversation_id, agent_id)
        except ReassignFailed as e:
            logger.error(e.message, extra={"context": {"conversation_id": conversation_id, "owner": owner.value}})
            return False

        logger.info(f"Conversation {conversation_id} reassigned to {owner.value} agent {agent_id}")
        return True

    async def get_current_owner(self, conversation_id: str) -> ProviderOwnership:
        try:
            response = await self._client.get(f"/conversations/{conversation_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Ownership check failed for {conversation_id}: {e}")
            return ProviderOwnership.UNKNOWN
        if response.status_code != 200:
            logger.warning(f"Ownership check for {conversation_id} returned {response.status_code}")
            return ProviderOwnership.UNKNOWN

        assigned_agent_id = (response.json() or {}).get("assigned_agent_id")
        if assigned_agent_id and assigned_agent_id != self.bot_agent_id:
            return ProviderOwnership.HUMAN
        return ProviderOwnership.BOT
