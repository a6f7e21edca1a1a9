"""Messaging service - outbound WhatsApp messages for a professional"""

import logging
from typing import Optional

from ...config import DELIVERY_FAILURE_POLICY
from ...errors import DeliveryError, ValidationError
from ...models import Professional
from ...shared.validators import normalize_whatsapp_number
from .credentials import decrypt_credential
from .evolution_client import EvolutionApiClient, SendResult

logger = logging.getLogger(__name__)

DELIVERY_POLICY_WARN = "warn"
DELIVERY_POLICY_FAIL = "fail"


class MessagingService:
    """Sends messages through the gateway and applies the delivery failure policy"""

    def __init__(
        self,
        client: Optional[EvolutionApiClient] = None,
        failure_policy: str = DELIVERY_FAILURE_POLICY,
    ):
        if failure_policy not in (DELIVERY_POLICY_WARN, DELIVERY_POLICY_FAIL):
            raise ValueError(f"Unknown delivery failure policy: {failure_policy}")
        self.client = client or EvolutionApiClient()
        self.failure_policy = failure_policy

    async def send_message(
        self,
        phone_number: str,
        text: str,
        professional: Optional[Professional] = None,
    ) -> SendResult:
        """
        Send ``text`` to ``phone_number`` using the professional's gateway instance.

        Raises:
            ValidationError: Phone number too short or empty text
            DeliveryError: The gateway did not accept the message
        """
        try:
            number = normalize_whatsapp_number(phone_number)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if not text or not text.strip():
            raise ValidationError("Message text is required")

        instance_name = None
        api_key = None
        if professional is not None:
            instance_name = professional.evolution_instance_name
            api_key = decrypt_credential(professional.evolution_api_key)

        logger.info(f"📱 Sending WhatsApp message to {number}")
        result = await self.client.send_text_message(
            number, text, instance_name=instance_name, api_key=api_key
        )

        if not result.ok:
            raise DeliveryError(f"Failed to send WhatsApp message (status {result.status})")

        logger.info(f"✅ WhatsApp message sent to {number}")
        return result

    async def deliver(
        self,
        phone_number: str,
        text: str,
        professional: Optional[Professional] = None,
    ) -> Optional[str]:
        """
        Send a notification that follows a completed domain operation.

        Returns None on success. Under the ``warn`` policy a failed delivery
        returns a warning for the caller; under ``fail`` the error propagates.
        """
        try:
            await self.send_message(phone_number, text, professional=professional)
            return None
        except (ValidationError, DeliveryError) as e:
            if self.failure_policy == DELIVERY_POLICY_FAIL:
                raise
            logger.warning(f"⚠️ WhatsApp delivery failed for {phone_number}: {e.message}")
            return f"Não foi possível enviar a mensagem no WhatsApp: {e.message}"


def get_messaging_service() -> MessagingService:
    return MessagingService()
