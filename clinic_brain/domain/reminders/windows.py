"""
Reminder windows and message texts.

All functions here are pure; ``now_local`` and ``starts_at_local`` must be
aware datetimes in the professional's timezone.
"""

from datetime import datetime, timedelta
from typing import Optional

from ...shared.clock import ensure_utc

REMINDER_D1 = "D1"
REMINDER_2H = "2H"
REMINDER_KINDS = (REMINDER_D1, REMINDER_2H)

D1_SEND_HOUR = 8
TWO_HOURS = timedelta(hours=2)
TWO_HOUR_WINDOW = timedelta(minutes=1)
CANDIDATE_HORIZON = timedelta(hours=48)


def is_in_reminder_window(kind: str, now_local: datetime, starts_at_local: datetime) -> bool:
    """
    D1: local clock reads exactly 08:00 and the appointment is on the next
    local calendar day.
    2H: the appointment starts between 2h and 2h01 from now.
    """
    if kind == REMINDER_D1:
        if now_local.hour != D1_SEND_HOUR or now_local.minute != 0:
            return False
        return starts_at_local.date() == now_local.date() + timedelta(days=1)

    if kind == REMINDER_2H:
        delta = starts_at_local - now_local
        return TWO_HOURS <= delta < TWO_HOURS + TWO_HOUR_WINDOW

    raise ValueError(f"Unknown reminder kind: {kind}")


def build_reminder_external_id(kind: str, appointment_id: str, starts_at: datetime) -> str:
    """Idempotency key stored on the BOT interaction that records the send"""
    if kind == REMINDER_D1:
        return f"reminder:d1:{appointment_id}:{ensure_utc(starts_at).strftime('%Y%m%d')}"
    return f"reminder:2h:{appointment_id}"


def build_reminder_message(
    kind: str,
    patient_name: str,
    professional_name: str,
    confirmation_message: Optional[str] = None,
) -> str:
    if kind == REMINDER_D1:
        base = confirmation_message or (
            f"Olá {patient_name}, sua consulta com {professional_name} é amanhã. "
            "Você confirma presença?"
        )
        return f"{base} Responda por aqui para registrar sua confirmação."

    return (
        f"Olá {patient_name}, lembrete final: sua consulta com {professional_name} "
        "começa em aproximadamente 2 horas."
    )
