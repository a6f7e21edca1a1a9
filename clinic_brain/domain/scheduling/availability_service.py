"""Availability service - overlap checks against appointments and blocks"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from ...errors import SlotConflictError
from ...shared.clock import ensure_utc, format_local, get_zone
from .repository import AppointmentRepository, AvailabilityBlockRepository
from .time_calculator import (
    SLOT_DURATION_MINUTES,
    generate_month_slots,
    group_slots_by_day,
    month_bounds,
    resolve_portal_period,
)

logger = logging.getLogger(__name__)

CONFLICT_APPOINTMENT = "appointment"
CONFLICT_BLOCK = "availability_block"


class Conflict(NamedTuple):
    kind: str
    reason: str
    starts_at: datetime
    ends_at: datetime


class AvailabilityService:
    """
    Advisory availability checks.

    A clean result here does not guarantee the insert succeeds: the storage
    overlap constraint has the final say under concurrency.
    """

    def __init__(self, db: Session, zone_name: Optional[str] = None):
        self.db = db
        self.zone_name = zone_name
        self.appointments = AppointmentRepository()
        self.blocks = AvailabilityBlockRepository()

    def _period_text(self, starts_at: datetime, ends_at: datetime) -> str:
        return f"{format_local(starts_at, self.zone_name)} até {format_local(ends_at, self.zone_name)}"

    def check_conflict(
        self,
        professional_id: str,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> Optional[Conflict]:
        """Return the first conflict for ``[starts_at, ends_at)`` or None"""
        starts_at = ensure_utc(starts_at)
        ends_at = ensure_utc(ends_at)

        appointment = self.appointments.find_overlapping(
            self.db, professional_id, starts_at, ends_at, exclude_id=exclude_id
        )
        if appointment:
            return Conflict(
                CONFLICT_APPOINTMENT,
                "Horário já ocupado para este profissional "
                f"({self._period_text(appointment.starts_at, appointment.ends_at)})",
                appointment.starts_at,
                appointment.ends_at,
            )

        block = self.blocks.find_overlapping(self.db, professional_id, starts_at, ends_at)
        if block:
            reason = f"Profissional indisponível no período {self._period_text(block.starts_at, block.ends_at)}."
            if block.reason and block.reason.strip():
                reason = f"{reason[:-1]}. Motivo: {block.reason.strip()}"
            return Conflict(CONFLICT_BLOCK, reason, block.starts_at, block.ends_at)

        return None

    def ensure_available(
        self,
        professional_id: str,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Raise ``SlotConflictError`` when the window is taken"""
        conflict = self.check_conflict(professional_id, starts_at, ends_at, exclude_id=exclude_id)
        if conflict:
            logger.info(f"⚠️ Slot conflict for professional {professional_id}: {conflict.kind}")
            raise SlotConflictError(conflict.reason)

    def ensure_patient_available(
        self,
        professional_id: str,
        patient_id: str,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Reject a window in which the patient already has an active appointment"""
        existing = self.appointments.find_overlapping(
            self.db,
            professional_id,
            ensure_utc(starts_at),
            ensure_utc(ends_at),
            exclude_id=exclude_id,
            patient_id=patient_id,
        )
        if existing:
            raise SlotConflictError("Paciente já possui consulta nesse horário")

    def list_open_slots(
        self,
        professional_id: str,
        now: datetime,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> dict:
        """
        Free 50-minute portal slots for a month in the professional's timezone.

        Invalid or missing month/year fall back to the current local month.
        """
        now = ensure_utc(now)
        month, year = resolve_portal_period(month, year, self.zone_name, now)
        period_start, period_end = month_bounds(year, month, self.zone_name)
        window_start = max(period_start, now)

        busy = []
        if window_start < period_end:
            busy.extend(
                (item.starts_at, item.ends_at)
                for item in self.appointments.list_active_overlapping(
                    self.db, professional_id, window_start, period_end
                )
            )
            busy.extend(
                (item.starts_at, item.ends_at)
                for item in self.blocks.list_overlapping(self.db, professional_id, window_start, period_end)
            )

        slots = generate_month_slots(year, month, self.zone_name, now, busy)
        slots_by_day = group_slots_by_day(slots, self.zone_name)

        return {
            "timezone": get_zone(self.zone_name).key,
            "month": month,
            "year": year,
            "slot_duration_minutes": SLOT_DURATION_MINUTES,
            "slots": [{"starts_at": start, "ends_at": end} for start, end in slots],
            "slots_by_day": {
                day: [{"starts_at": start, "ends_at": end} for start, end in day_slots]
                for day, day_slots in slots_by_day.items()
            },
            "available_days": list(slots_by_day.keys()),
        }
