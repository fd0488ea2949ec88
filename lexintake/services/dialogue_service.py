"""Runs one inbound message through the triage script for its sender.

Per message, under the sender's lock: read (or create) the session, compute the
transition, write or delete the session, send replies, arm the follow-up, upsert
the lead. Collaborator failures are logged and never undo the transition.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from lexintake.config import Settings
from lexintake.logging_config import SenderLoggerAdapter, get_logger
from lexintake.schemas.message import InboundMessage
from lexintake.services.ai_service import FALLBACK_REPLY, ReplyGenerator, build_reply_generator
from lexintake.services.crm_service import LeadStore, NullLeadStore, build_lead_store
from lexintake.services.escalation_service import EscalationScheduler
from lexintake.services.messaging import OutboundSender, WhatsAppCloudSender
from lexintake.services.session_store import SenderLocks, SessionStore, build_session_store
from lexintake.services.state_machine import (
    BUSINESS_HOURS,
    ESCALATION_DELAY_SECONDS,
    TriageOutcome,
    advance,
)

logger = get_logger("dialogue_service")

REPLY_MODE_TRIAGE = "triage"
REPLY_MODE_ASSISTANT = "assistant"


def office_clock(timezone_name: str) -> Callable[[], datetime]:
    tz = ZoneInfo(timezone_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


class DialogueService:
    def __init__(
        self,
        store: SessionStore,
        sender: OutboundSender,
        scheduler: Optional[EscalationScheduler] = None,
        lead_store: Optional[LeadStore] = None,
        reply_generator: Optional[ReplyGenerator] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        business_hours: tuple[int, int] = BUSINESS_HOURS,
        escalation_delay_seconds: float = ESCALATION_DELAY_SECONDS,
        cancel_follow_up_on_new_message: bool = False,
        reply_mode: str = REPLY_MODE_TRIAGE,
    ):
        self.store = store
        self.sender = sender
        self.scheduler = scheduler or EscalationScheduler()
        self.lead_store = lead_store or NullLeadStore()
        self.reply_generator = reply_generator
        self.clock = clock
        self.business_hours = business_hours
        self.escalation_delay_seconds = escalation_delay_seconds
        self.cancel_follow_up_on_new_message = cancel_follow_up_on_new_message
        self.reply_mode = reply_mode
        self.locks = SenderLocks()

    async def handle_inbound(self, message: InboundMessage) -> Optional[TriageOutcome]:
        """Process one inbound message. Returns None if it could not be processed."""
        log = SenderLoggerAdapter(logger, {"sender_id": message.sender_id, "message_id": message.message_id})

        async with self.locks.hold(message.sender_id):
            # under the lock, so a follow-up armed by an earlier message from this sender is seen
            if self.cancel_follow_up_on_new_message and self.scheduler.cancel(message.sender_id):
                log.info("Pending follow-up cancelled by new message")

            try:
                if self.reply_mode == REPLY_MODE_ASSISTANT:
                    return await self._reply_freeform(message, log)
                return await self._triage(message, log)
            except Exception as exc:
                log.error("Inbound processing failed", context={"error": str(exc)}, exc_info=True)
                return None

    async def _triage(self, message: InboundMessage, log: SenderLoggerAdapter) -> TriageOutcome:
        now = self.clock()
        session = await self.store.get_or_create(message.sender_id)
        previous_step = session.step

        outcome = advance(
            session,
            message.text,
            hour=now.hour,
            business_hours=self.business_hours,
            escalation_delay_seconds=self.escalation_delay_seconds,
        )

        if outcome.session is None:
            await self.store.delete(message.sender_id)
        else:
            outcome.session.updated_at = now
            await self.store.save(outcome.session)

        log.info(
            "Triage transition",
            context={
                "from_step": previous_step.value,
                "to_step": outcome.session.step.value if outcome.session else "end",
                "replies": len(outcome.replies),
                "follow_up": outcome.follow_up is not None,
            },
        )

        for reply in outcome.replies:
            await self._deliver(message.sender_id, reply, log)

        if outcome.follow_up is not None:
            follow_up_text = outcome.follow_up.text
            sender_id = message.sender_id

            async def _send_follow_up() -> None:
                await self._deliver(sender_id, follow_up_text, log)

            self.scheduler.schedule(sender_id, outcome.follow_up.delay_seconds, _send_follow_up)

        last_reply = outcome.replies[-1] if outcome.replies else ""
        await self._record_lead(message.sender_id, message.text, last_reply, log)
        return outcome

    async def _reply_freeform(self, message: InboundMessage, log: SenderLoggerAdapter) -> TriageOutcome:
        if self.reply_generator is None:
            reply = FALLBACK_REPLY
        else:
            result = await self.reply_generator.generate(message.sender_id, message.text)
            if not result.ok:
                log.info("Using fallback reply", context={"error_code": result.error_code})
            reply = result.unwrap_or(FALLBACK_REPLY)

        await self._deliver(message.sender_id, reply, log)
        await self._record_lead(message.sender_id, message.text, reply, log)
        return TriageOutcome(session=None, replies=[reply])

    async def _deliver(self, recipient: str, body: str, log: SenderLoggerAdapter) -> bool:
        try:
            sent = await self.sender.send(recipient, body)
        except Exception as exc:
            log.error("Outbound send raised", context={"error": str(exc)})
            return False
        if not sent:
            log.warning("Outbound send failed", context={"body_preview": body[:80]})
        return sent

    async def _record_lead(self, phone: str, last_message: str, last_reply: str, log: SenderLoggerAdapter) -> None:
        try:
            ok = await self.lead_store.upsert(phone, {"lastMessage": last_message, "lastReply": last_reply})
        except Exception as exc:
            log.error("Lead upsert raised", context={"error": str(exc)})
            return
        if not ok:
            log.warning("Lead upsert failed")

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()


def build_dialogue_service(settings: Settings) -> DialogueService:
    reply_mode = (settings.reply_mode or REPLY_MODE_TRIAGE).strip().lower()
    reply_generator = build_reply_generator(settings) if reply_mode == REPLY_MODE_ASSISTANT else None
    return DialogueService(
        store=build_session_store(settings),
        sender=WhatsAppCloudSender.from_settings(settings),
        scheduler=EscalationScheduler(),
        lead_store=build_lead_store(settings),
        reply_generator=reply_generator,
        clock=office_clock(settings.office_timezone),
        business_hours=(settings.business_hours_start, settings.business_hours_end),
        escalation_delay_seconds=settings.escalation_delay_seconds,
        cancel_follow_up_on_new_message=settings.escalation_cancel_on_new_message,
        reply_mode=reply_mode,
    )
