import asyncio
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request

from relay.config import settings
from relay.dependencies import build_orchestrator
from relay.logging_config import get_logger, setup_logging
from relay.routers import admin, webhook
from relay.services.alert_service import alert_critical
from relay.services.health_service import VERSION, get_system_health

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Freshchat Assistant Relay",
    description="Relays Freshchat conversations to an OpenAI assistant and hands them to humans on escalation",
    version=VERSION,
)

app.include_router(webhook.router)
app.include_router(admin.router)

eviction_logger = get_logger("eviction_worker")
_eviction_worker_task: asyncio.Task | None = None


def _is_eviction_worker_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.eviction_worker_enabled


async def _eviction_worker_loop(app: FastAPI) -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.eviction_interval_seconds, 1.0))
            orchestrator = getattr(app.state, "orchestrator", None)
            if orchestrator is None:
                continue
            evicted = orchestrator.evict_stale_sessions()
            if evicted:
                eviction_logger.info("Eviction worker processed", extra={"context": {"evicted": evicted}})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            eviction_logger.error(
                "Eviction worker loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_relay() -> None:
    global _eviction_worker_task
    app.state.started_at = datetime.now(timezone.utc)

    missing = settings.missing_required()
    if missing:
        logger.error("Missing required configuration", extra={"context": {"missing": missing}})
        await alert_critical("Relay started with missing configuration", {"missing": ", ".join(missing)})

    orchestrator = build_orchestrator(settings)
    await orchestrator.messaging.probe_capabilities()
    app.state.orchestrator = orchestrator
    logger.info(
        "Relay started",
        extra={
            "context": {
                "store_backend": settings.store_backend,
                "verify_ownership_with_provider": settings.verify_ownership_with_provider,
            }
        },
    )

    if not _is_eviction_worker_enabled():
        return
    if _eviction_worker_task is None or _eviction_worker_task.done():
        _eviction_worker_task = asyncio.create_task(_eviction_worker_loop(app))
        eviction_logger.info("Eviction worker started")


@app.on_event("shutdown")
async def stop_relay() -> None:
    global _eviction_worker_task
    if _eviction_worker_task is not None:
        _eviction_worker_task.cancel()
        try:
            await _eviction_worker_task
        except asyncio.CancelledError:
            pass
        _eviction_worker_task = None

    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.assistant.aclose()
        await orchestrator.messaging.aclose()


@app.get("/health")
async def health(request: Request):
    return get_system_health(
        getattr(request.app.state, "orchestrator", None),
        settings,
        started_at=getattr(request.app.state, "started_at", None),
    )
