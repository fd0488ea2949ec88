import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from lexintake.config import settings
from lexintake.logging_config import get_logger
from lexintake.schemas.webhook import WebhookPayload, WebhookResponse
from lexintake.services.dialogue_service import DialogueService, build_dialogue_service
from lexintake.services.intent_service import normalize_inbound

logger = get_logger("webhook")

router = APIRouter()

ROOT_BANNER = "Webhook WhatsApp ativo 🚀"


def get_dialogue_service(request: Request) -> DialogueService:
    service = getattr(request.app.state, "dialogue_service", None)
    if service is None:
        service = build_dialogue_service(settings)
        request.app.state.dialogue_service = service
    return service


def verify_signature(raw_body: bytes, signature_header: Optional[str], app_secret: str) -> bool:
    """Check Meta's X-Hub-Signature-256 ("sha256=<hex>") against the raw body."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.removeprefix("sha256="))


@router.get("/", response_class=PlainTextResponse)
async def root():
    return ROOT_BANNER


@router.get("/webhook")
async def verify_webhook(request: Request):
    """Meta subscription handshake."""
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge")

    if mode == "subscribe" and token == settings.whatsapp_verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")

    logger.warning("Webhook verification rejected", extra={"context": {"mode": mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: DialogueService = Depends(get_dialogue_service),
):
    """Acknowledge right away; triage runs after the response is sent."""
    raw = await request.body()

    if settings.whatsapp_app_secret:
        if not verify_signature(raw, request.headers.get("X-Hub-Signature-256"), settings.whatsapp_app_secret):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    if not raw or not raw.strip():
        logger.info("Webhook probe with empty body")
        return WebhookResponse(success=True, message="Empty payload")

    try:
        payload = WebhookPayload.model_validate(json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return WebhookResponse(success=False, message="Invalid JSON payload")
    except ValidationError as exc:
        logger.warning("Webhook payload validation failed", extra={"context": {"error": str(exc)}})
        return WebhookResponse(success=False, message="Invalid webhook payload")

    accepted = 0
    for item in payload.iter_messages():
        if (item.type or "").lower() != "text":
            logger.info(
                "Non-text message ignored",
                extra={"context": {"type": item.type, "message_id": item.id}},
            )
            continue

        inbound = normalize_inbound(item.sender, item.text.body if item.text else None, item.id)
        if inbound is None:
            continue

        background_tasks.add_task(service.handle_inbound, inbound)
        accepted += 1

    return WebhookResponse(success=True, message="Accepted" if accepted else "No text messages", accepted=accepted)
