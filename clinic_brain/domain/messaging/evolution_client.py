"""
Evolution API client

Thin async wrapper around the WhatsApp gateway's ``sendText`` endpoint with a
per-attempt timeout and a bounded number of attempts with linear backoff.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from ...config import (
    EVOLUTION_API_KEY,
    EVOLUTION_INSTANCE,
    EVOLUTION_RETRY_ATTEMPTS,
    EVOLUTION_TIMEOUT_MS,
    EVOLUTION_URL,
)

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.3


class SendResult(BaseModel):
    ok: bool
    status: int
    body: Any = None


class EvolutionApiClient:
    def __init__(
        self,
        base_url: str = EVOLUTION_URL,
        api_key: str = EVOLUTION_API_KEY,
        instance_name: str = EVOLUTION_INSTANCE,
        timeout_ms: int = EVOLUTION_TIMEOUT_MS,
        retry_attempts: int = EVOLUTION_RETRY_ATTEMPTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name
        self.timeout = timeout_ms / 1000.0
        self.retry_attempts = max(1, retry_attempts)
        self.transport = transport

    async def send_text_message(
        self,
        phone_number: str,
        text: str,
        instance_name: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> SendResult:
        """
        Send a text message through the gateway.

        Args:
            phone_number: Normalized digits-only number (country code included)
            text: Message body
            instance_name: Per-professional instance, defaults to the configured one
            api_key: Per-professional key, defaults to the configured one

        Returns:
            SendResult of the last attempt. Network failures yield ``ok=False, status=0``.
        """
        instance = instance_name or self.instance_name
        url = f"{self.base_url}/message/sendText/{instance}"
        headers = {"Content-Type": "application/json", "apikey": api_key or self.api_key}
        payload = {"number": phone_number, "text": text}

        result = SendResult(ok=False, status=0, body=None)

        for attempt in range(1, self.retry_attempts + 1):
            try:
                logger.info(f"🚀 Sending WhatsApp message via {instance} (attempt {attempt})")
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.post(url, json=payload, headers=headers)

                try:
                    body = response.json()
                except ValueError:
                    body = response.text

                result = SendResult(ok=response.is_success, status=response.status_code, body=body)
                logger.info(f"📡 Evolution API response status: {response.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"⚠️ Evolution API request failed: {str(e)}")
                result = SendResult(ok=False, status=0, body={"error": str(e)})

            if result.ok:
                return result

            if attempt < self.retry_attempts:
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)

        logger.error(f"❌ Evolution API send failed after {self.retry_attempts} attempts")
        return result
