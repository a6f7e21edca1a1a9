"""
Inbound webhook payload normalization.

The WhatsApp gateway delivers several payload shapes depending on version and
event type. Each field is looked up through an ordered list of candidate paths
and the first non-empty string wins.
"""

import time
from typing import Any, NamedTuple, Optional

from ...shared.validators import digits_only

MIN_PHONE_DIGITS = 10

PHONE_PATHS = (
    ("data", "key", "remoteJid"),
    ("data", "key", "participant"),
    ("data", "sender"),
    ("sender",),
    ("data", "from"),
    ("from",),
    ("phone",),
    ("data", "phone"),
    ("data", "number"),
    ("number",),
)

TEXT_PATHS = (
    ("data", "message", "conversation"),
    ("data", "message", "extendedTextMessage", "text"),
    ("data", "message", "imageMessage", "caption"),
    ("message", "conversation"),
    ("message", "extendedTextMessage", "text"),
    ("data", "text"),
    ("text",),
)

MESSAGE_ID_PATHS = (
    ("data", "key", "id"),
    ("data", "id"),
    ("id",),
)

INSTANCE_PATHS = (
    ("instance",),
    ("instanceName",),
    ("data", "instance"),
    ("data", "instanceName"),
    ("sender", "instance"),
    ("data", "sender", "instance"),
)

PROFESSIONAL_ID_PATHS = (
    ("professionalId",),
    ("data", "professionalId"),
)

FROM_ME_PATHS = (
    ("data", "key", "fromMe"),
    ("fromMe",),
)


class InboundMessage(NamedTuple):
    phone_number: str
    text: str
    message_id: str


def get_nested_value(source: Any, path: tuple) -> Any:
    current = source
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def get_first_string(source: Any, paths: tuple) -> Optional[str]:
    for path in paths:
        value = get_nested_value(source, path)
        if isinstance(value, str) and value:
            return value
    return None


def extract_phone_number(payload: Any) -> Optional[str]:
    """Digits of the first phone-like candidate (JID suffixes are dropped with the non-digits)"""
    candidate = get_first_string(payload, PHONE_PATHS)
    if candidate:
        cleaned = digits_only(candidate.split("@")[0])
        if len(cleaned) >= MIN_PHONE_DIGITS:
            return cleaned
    return None


def extract_text_message(payload: Any) -> Optional[str]:
    candidate = get_first_string(payload, TEXT_PATHS)
    if candidate and candidate.strip():
        return candidate.strip()
    return None


def extract_message_id(payload: Any) -> str:
    for path in MESSAGE_ID_PATHS:
        value = get_nested_value(payload, path)
        if value is not None:
            return str(value)
    return f"msg_{int(time.time() * 1000)}"


def extract_instance_name(payload: Any) -> Optional[str]:
    candidate = get_first_string(payload, INSTANCE_PATHS)
    return candidate.strip() if candidate else None


def extract_professional_id(payload: Any) -> Optional[str]:
    return get_first_string(payload, PROFESSIONAL_ID_PATHS)


def is_outgoing_message(payload: Any) -> bool:
    """Messages the professional's own number sent (echoed back by the gateway)"""
    for path in FROM_ME_PATHS:
        value = get_nested_value(payload, path)
        if value is not None:
            return value is True
    return False


def is_supported_text_event(payload: Any) -> bool:
    event = str(get_nested_value(payload, ("event",)) or "").lower()
    message_type = get_nested_value(payload, ("data", "messageType"))
    if message_type is None:
        message_type = get_nested_value(payload, ("type",))
    message_type = str(message_type or "").lower()

    if "message" in event:
        return True

    return any(kind in message_type for kind in ("conversation", "text", "extendedtextmessage"))


def extract_inbound_message(payload: Any) -> Optional[InboundMessage]:
    """Phone, text and message id, or None when the event carries no usable text"""
    phone_number = extract_phone_number(payload)
    text = extract_text_message(payload)
    if not phone_number or not text:
        return None
    return InboundMessage(phone_number, text, extract_message_id(payload))
