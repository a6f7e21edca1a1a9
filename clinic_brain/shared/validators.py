"""Shared validation utilities"""

import re
import uuid
from typing import Optional

BRAZIL_COUNTRY_CODE = "55"


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def digits_only(value: Optional[str]) -> str:
    """Strip every non-digit character (WhatsApp JIDs, formatted numbers, ...)"""
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))


def normalize_whatsapp_number(phone: Optional[str]) -> str:
    """
    Normalize a phone number for the WhatsApp gateway.

    Local Brazilian numbers (DDD + number, 10 or 11 digits) get the country
    code prepended. Anything else is returned as digits only.

    Raises:
        ValueError: If the result is too short to be a full international number
    """
    digits = digits_only(phone)

    if len(digits) in (10, 11):
        digits = f"{BRAZIL_COUNTRY_CODE}{digits}"

    if len(digits) < 12:
        raise ValueError("Phone number must include country code and area code")

    return digits


def validate_patient_phone(phone: Optional[str]) -> str:
    """
    Validate a patient phone number as stored on the patient record.

    Returns:
        Digits-only phone number

    Raises:
        ValueError: If the phone number has fewer than 10 digits
    """
    digits = digits_only(phone)
    if len(digits) < 10:
        raise ValueError("Phone number must have at least 10 digits")
    return digits


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email
