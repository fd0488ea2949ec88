import asyncio
import os

import uvicorn
from fastapi import Depends, FastAPI

from lexintake.config import settings
from lexintake.logging_config import get_logger, setup_logging
from lexintake.routers import webhook
from lexintake.services.dialogue_service import DialogueService, build_dialogue_service

setup_logging(settings.log_level)

app = FastAPI(
    title="Lexintake API",
    description="WhatsApp triage agent for a law office",
    version="0.1.0",
)

app.include_router(webhook.router)

sweeper_logger = get_logger("session_sweeper")
_sweeper_task: asyncio.Task | None = None


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_sweeper_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("SESSION_SWEEPER_ENABLED"), default=True)


async def _session_sweeper_loop(service: DialogueService, sleep_func=asyncio.sleep) -> None:
    interval_seconds = max(settings.session_sweep_interval_seconds, 1.0)
    while True:
        try:
            await sleep_func(interval_seconds)
            purged = await service.store.purge_expired()
            if purged:
                sweeper_logger.info("Session sweeper purged", extra={"context": {"purged": purged}})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweeper_logger.error(
                "Session sweeper loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_services() -> None:
    global _sweeper_task
    if getattr(app.state, "dialogue_service", None) is None:
        app.state.dialogue_service = build_dialogue_service(settings)
    if not _is_sweeper_enabled():
        return
    if _sweeper_task is None or _sweeper_task.done():
        _sweeper_task = asyncio.create_task(_session_sweeper_loop(app.state.dialogue_service))
        sweeper_logger.info("Session sweeper started")


@app.on_event("shutdown")
async def stop_services() -> None:
    global _sweeper_task
    if _sweeper_task is not None:
        _sweeper_task.cancel()
        try:
            await _sweeper_task
        except asyncio.CancelledError:
            pass
        _sweeper_task = None

    service = getattr(app.state, "dialogue_service", None)
    if service is not None:
        await service.shutdown()


@app.get("/health")
async def health(service: DialogueService = Depends(webhook.get_dialogue_service)):
    return {
        "status": "ok",
        "reply_mode": service.reply_mode,
        "sessions": await service.store.size_hint(),
        "pending_follow_ups": service.scheduler.pending_count(),
    }


def run() -> None:
    uvicorn.run("lexintake.main:app", host="0.0.0.0", port=settings.port)
