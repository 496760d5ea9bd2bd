import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from relay.logging_config import get_logger
from relay.services.assistant.base import AssistantClient, AssistantReply
from relay.services.errors import (
    AssistantEmptyReply,
    AssistantRunFailed,
    AssistantTimeout,
    AssistantUnavailable,
)

logger = get_logger("assistant.openai")

# The relay runs no tools, so a run asking for tool output can never finish.
FAILED_RUN_STATUSES = {"failed", "expired", "cancelled", "cancelling", "incomplete", "requires_action"}


def _json_body(response: httpx.Response, error_cls=AssistantUnavailable) -> dict:
    """Decoded JSON object of a 200 response; anything else is an assistant failure."""
    try:
        body = response.json()
    except ValueError as e:
        logger.error(f"OpenAI returned a non-JSON body: {response.text[:200]}")
        raise error_cls("OpenAI returned a non-JSON body") from e
    if not isinstance(body, dict):
        raise error_cls(f"OpenAI returned {type(body).__name__} instead of an object")
    return body


class OpenAIAssistantClient(AssistantClient):
    """OpenAI Assistants API (v2): a session is a thread, a reply is a run."""

    def __init__(
        self,
        api_key: str,
        assistant_id: str,
        base_url: str = "https://api.openai.com/v1",
        organization: Optional[str] = None,
        project: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.assistant_id = assistant_id
        self._sleep = sleep_func
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }
        if organization:
            headers["OpenAI-Organization"] = organization
        if project:
            headers["OpenAI-Project"] = project
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_session(self) -> str:
        try:
            response = await self._client.post("/threads", json={})
        except httpx.HTTPError as e:
            raise AssistantUnavailable(f"Thread creation failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"OpenAI thread error: {response.status_code} - {response.text[:200]}")
            raise AssistantUnavailable(f"OpenAI API error: {response.status_code}")

        thread_id = _json_body(response).get("id")
        if not thread_id:
            raise AssistantUnavailable("OpenAI returned a thread without id")
        return thread_id

    async def submit_and_await_reply(
        self,
        session_id: str,
        text: str,
        poll_interval_seconds: float = 1.0,
        max_attempts: int = 60,
    ) -> AssistantReply:
        await self._add_user_message(session_id, text)
        run = await self._create_run(session_id)
        run_id = run["id"]
        logger.info(f"Waiting for assistant run {run_id} on thread {session_id}")

        attempts = await self._await_run(session_id, run, poll_interval_seconds, max_attempts)
        reply_text = await self._latest_reply(session_id, run_id)

        logger.info(
            "Assistant run completed",
            extra={"context": {"thread_id": session_id, "run_id": run_id, "attempts": attempts}},
        )
        return AssistantReply(text=reply_text, session_id=session_id, run_id=run_id, attempts=attempts)

    async def _add_user_message(self, session_id: str, text: str) -> None:
        try:
            response = await self._client.post(
                f"/threads/{session_id}/messages",
                json={"role": "user", "content": text},
            )
        except httpx.HTTPError as e:
            raise AssistantUnavailable(f"Message submission failed: {e}") from e
        if response.status_code != 200:
            logger.error(f"OpenAI message error: {response.status_code} - {response.text[:200]}")
            raise AssistantUnavailable(f"OpenAI API error: {response.status_code}")

    async def _create_run(self, session_id: str) -> dict:
        try:
            response = await self._client.post(
                f"/threads/{session_id}/runs",
                json={"assistant_id": self.assistant_id},
            )
        except httpx.HTTPError as e:
            raise AssistantUnavailable(f"Run creation failed: {e}") from e
        if response.status_code != 200:
            logger.error(f"OpenAI run error: {response.status_code} - {response.text[:200]}")
            raise AssistantUnavailable(f"OpenAI API error: {response.status_code}")

        run = _json_body(response)
        if not run.get("id"):
            raise AssistantUnavailable("OpenAI returned a run without id")
        return run

    async def _retrieve_run(self, session_id: str, run_id: str) -> Optional[dict]:
        """Fetch run state; None means a transient failure to retry on the next tick."""
        try:
            response = await self._client.get(f"/threads/{session_id}/runs/{run_id}")
        except httpx.TimeoutException:
            logger.warning(f"Run {run_id} poll timed out, retrying")
            return None
        except httpx.TransportError as e:
            logger.warning(f"Run {run_id} poll failed: {e}, retrying")
            return None

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Run {run_id} poll got {response.status_code}, retrying")
            return None
        if response.status_code != 200:
            raise AssistantRunFailed(f"Run {run_id} lookup failed: {response.status_code}")
        return _json_body(response, AssistantRunFailed)

    async def _await_run(self, session_id: str, run: dict, poll_interval_seconds: float, max_attempts: int) -> int:
        run_id = run["id"]
        status = run.get("status")
        last_error = run.get("last_error")
        attempts = 0

        while status != "completed":
            if status in FAILED_RUN_STATUSES:
                message = (last_error or {}).get("message") if isinstance(last_error, dict) else None
                raise AssistantRunFailed(f"Assistant run {status}: {message or 'no details'}")
            if attempts >= max_attempts:
                raise AssistantTimeout(f"Assistant timeout after {attempts} polls (status: {status})")

            await self._sleep(poll_interval_seconds)
            attempts += 1

            polled = await self._retrieve_run(session_id, run_id)
            if polled is not None:
                status = polled.get("status")
                last_error = polled.get("last_error")

            if attempts % 10 == 0:
                logger.info(f"Still waiting for run {run_id} ({attempts} polls, status: {status})")

        return attempts

    async def _latest_reply(self, session_id: str, run_id: str) -> str:
        try:
            response = await self._client.get(
                f"/threads/{session_id}/messages",
                params={"order": "desc", "limit": 20, "run_id": run_id},
            )
        except httpx.HTTPError as e:
            raise AssistantUnavailable(f"Reading reply failed: {e}") from e
        if response.status_code != 200:
            raise AssistantUnavailable(f"OpenAI API error: {response.status_code}")

        for message in _json_body(response).get("data") or []:
            if not isinstance(message, dict) or message.get("role") != "assistant":
                continue
            parts = [
                part["text"].get("value", "")
                for part in message.get("content") or []
                if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), dict)
            ]
            text = "\n\n".join(part for part in parts if part).strip()
            if text:
                return text

        raise AssistantEmptyReply(f"No assistant reply found for run {run_id}")
