"""
Webhook service - inbound WhatsApp message ingestion.

An accepted message is run through the conversation state machine; the
inbound interaction, the session upsert and the bot reply are persisted in a
single transaction and the reply is sent only after that commit.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import BOOKING_SITE_URL, EVOLUTION_INSTANCE
from ...models import MessageType, Professional
from ...shared.clock import utcnow
from ..conversation.repository import ConversationRepository
from ..conversation.state_machine import INITIAL, transition
from ..messaging.service import MessagingService
from .normalizer import (
    extract_inbound_message,
    extract_instance_name,
    extract_professional_id,
    is_outgoing_message,
    is_supported_text_event,
)
from .repository import WebhookRepository

logger = logging.getLogger(__name__)

IGNORED_OUTGOING = "outgoing_message"
IGNORED_UNSUPPORTED = "unsupported_event"
IGNORED_MISSING_TEXT = "missing_text"
IGNORED_UNATTRIBUTED = "unattributed"
IGNORED_WEBHOOK_DISABLED = "webhook_disabled"
IGNORED_DUPLICATE = "duplicate"

IGNORED_MESSAGES = {
    IGNORED_OUTGOING: "Mensagem de saída ignorada",
    IGNORED_UNSUPPORTED: "Evento não suportado",
    IGNORED_MISSING_TEXT: "Evento sem conteúdo de texto",
    IGNORED_UNATTRIBUTED: "Profissional não identificado para este evento",
    IGNORED_WEBHOOK_DISABLED: "Webhook desativado para este profissional",
    IGNORED_DUPLICATE: "Evento duplicado já processado",
}


class ConversationStep(BaseModel):
    previous_state: str
    next_state: str
    should_end: bool


class WebhookResult(BaseModel):
    ignored: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    duplicate: bool = False
    payload: Optional[dict[str, Any]] = None
    conversation: Optional[ConversationStep] = None
    response_message: Optional[str] = None
    delivery_warning: Optional[str] = None


def ignored(reason: str, payload: Optional[dict[str, Any]] = None) -> WebhookResult:
    return WebhookResult(
        ignored=True,
        reason=reason,
        message=IGNORED_MESSAGES[reason],
        duplicate=reason == IGNORED_DUPLICATE,
        payload=payload,
    )


class WebhookService:
    """Turns gateway events into conversation steps"""

    def __init__(self, db: Session, messaging: MessagingService):
        self.db = db
        self.messaging = messaging
        self.repo = WebhookRepository()
        self.conversations = ConversationRepository()

    def resolve_professional(self, payload: Any, phone_number: str) -> Optional[Professional]:
        """
        Find the tenant an inbound event belongs to.

        Order: explicit professional id in the payload, gateway instance name
        (falling back to the configured default instance), the professional of
        the newest patient with this phone, and finally the only professional
        when exactly one exists.
        """
        professional_id = extract_professional_id(payload)
        if professional_id:
            professional = self.repo.get_professional(self.db, professional_id)
            if professional:
                return professional

        instance_name = extract_instance_name(payload) or EVOLUTION_INSTANCE
        if instance_name:
            professional = self.repo.get_professional_by_instance(self.db, instance_name)
            if professional:
                return professional

        patient = self.repo.get_newest_patient_by_phone(self.db, phone_number)
        if patient:
            professional = self.repo.get_professional(self.db, patient.professional_id)
            if professional:
                return professional

        professionals = self.repo.list_professionals(self.db, limit=2)
        if len(professionals) == 1:
            return professionals[0]

        return None

    async def ingest_inbound_message(self, payload: Any, now: Optional[datetime] = None) -> WebhookResult:
        if is_outgoing_message(payload):
            return ignored(IGNORED_OUTGOING)

        if not is_supported_text_event(payload):
            return ignored(IGNORED_UNSUPPORTED)

        inbound = extract_inbound_message(payload)
        if inbound is None:
            return ignored(IGNORED_MISSING_TEXT)

        summary = {
            "phone_number": inbound.phone_number,
            "text": inbound.text,
            "message_id": inbound.message_id,
        }

        professional = self.resolve_professional(payload, inbound.phone_number)
        if professional is None:
            logger.warning(f"⚠️ Webhook event from {inbound.phone_number} not attributed to a professional")
            return ignored(IGNORED_UNATTRIBUTED, summary)

        if not professional.webhook_enabled:
            return ignored(IGNORED_WEBHOOK_DISABLED, summary)

        if self.conversations.external_message_exists(self.db, professional.id, inbound.message_id):
            logger.info(f"🔄 Duplicate webhook event {inbound.message_id} ignored")
            return ignored(IGNORED_DUPLICATE, summary)

        now = now or utcnow()
        patient = self.repo.get_patient_for_professional(self.db, professional.id, inbound.phone_number)
        session = self.conversations.get_session(self.db, professional.id, inbound.phone_number)
        previous_state = session.current_state if session else INITIAL

        step = transition(
            previous_state,
            inbound.text,
            booking_url=BOOKING_SITE_URL,
            doctor_name=professional.name,
        )

        patient_id = patient.id if patient else None
        try:
            self.conversations.stage_interaction(
                self.db,
                professional_id=professional.id,
                patient_id=patient_id,
                message_text=inbound.text,
                message_type=MessageType.PATIENT,
                external_message_id=inbound.message_id,
                created_at=now,
            )
            self.conversations.stage_session_state(
                self.db,
                professional.id,
                inbound.phone_number,
                current_state=step.next_state,
                is_active=not step.should_end,
                message_at=now,
            )
            self.conversations.stage_interaction(
                self.db,
                professional_id=professional.id,
                patient_id=patient_id,
                message_text=step.response_message,
                message_type=MessageType.BOT,
                created_at=now,
            )
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event won the insert
            self.db.rollback()
            logger.info(f"🔄 Duplicate webhook event {inbound.message_id} ignored")
            return ignored(IGNORED_DUPLICATE, summary)

        logger.info(
            f"📥 Conversation {inbound.phone_number}: {previous_state} -> {step.next_state}"
        )

        delivery_warning = await self.messaging.deliver(
            inbound.phone_number, step.response_message, professional=professional
        )

        return WebhookResult(
            ignored=False,
            payload=summary,
            conversation=ConversationStep(
                previous_state=previous_state,
                next_state=step.next_state,
                should_end=step.should_end,
            ),
            response_message=step.response_message,
            delivery_warning=delivery_warning,
        )
