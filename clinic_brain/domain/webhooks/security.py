"""
Webhook authentication.

The gateway is configured with a shared API key. Depending on how the
instance was set up it arrives in a header, the query string or the JSON
body; the first non-empty candidate is compared in constant time.
"""

import hmac
import logging
from typing import Any, Optional

from fastapi import HTTPException, Request

from ...config import WEBHOOK_API_KEY

logger = logging.getLogger(__name__)

HEADER_CANDIDATES = ("x-webhook-api-key", "apikey", "x-api-key")
QUERY_CANDIDATES = ("apikey", "webhookApiKey")
BODY_CANDIDATES = ("apikey", "webhookApiKey")


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def extract_authorization_token(authorization: Optional[str]) -> Optional[str]:
    """Token from ``Bearer <key>`` / ``apikey <key>``, or the raw header value"""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 1 or not parts[1]:
        return authorization
    return parts[1].strip()


def extract_webhook_api_key(headers: Any, query_params: Any, body: Any) -> Optional[str]:
    candidates = [headers.get(name) for name in HEADER_CANDIDATES]
    candidates.append(extract_authorization_token(headers.get("authorization")))
    candidates.extend(query_params.get(name) for name in QUERY_CANDIDATES)
    if isinstance(body, dict):
        candidates.extend(body.get(name) for name in BODY_CANDIDATES)

    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


async def read_json_body(request: Request) -> Any:
    """Parsed JSON body, or an empty dict when the body is missing or malformed"""
    try:
        return await request.json()
    except ValueError:
        return {}


async def verify_webhook_api_key(request: Request) -> None:
    """FastAPI dependency guarding the webhook endpoints"""
    body = await read_json_body(request)
    api_key = extract_webhook_api_key(request.headers, request.query_params, body)

    if not WEBHOOK_API_KEY or not api_key or not constant_time_compare(api_key, WEBHOOK_API_KEY):
        logger.warning("🚨 Webhook rejected: invalid API key")
        raise HTTPException(status_code=401, detail="Webhook API key inválida")
