"""Scheduling domain schemas - Pydantic models for validation"""

import re
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import AwareDatetime, BaseModel, field_validator

from ...shared.validators import validate_email

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment"""

    patientId: str
    startsAt: AwareDatetime
    endsAt: AwareDatetime
    notes: Optional[str] = None


class AppointmentReschedule(BaseModel):
    startsAt: AwareDatetime
    endsAt: AwareDatetime


class AppointmentCancel(BaseModel):
    reason: Optional[str] = None


class PatientSummary(BaseModel):
    id: str
    name: str
    phone_number: str

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    professional_id: str
    patient_id: str
    starts_at: datetime
    ends_at: datetime
    status: str
    notes: Optional[str] = None
    rescheduled_from_id: Optional[str] = None
    created_at: Optional[datetime] = None
    patient: Optional[PatientSummary] = None

    class Config:
        from_attributes = True


class AppointmentStatusResponse(BaseModel):
    id: str
    status: str


class RescheduleResponse(BaseModel):
    old_appointment_id: str
    new_appointment_id: str


# ============================================================================
# Manual professional actions
# ============================================================================


class ManualActionPatient(BaseModel):
    name: str
    phoneNumber: str
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Patient name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v and v.strip():
            return validate_email(v)
        return None


class ManualActionRequest(BaseModel):
    """Professional books, reschedules or cancels on behalf of a patient"""

    action: Literal["BOOK", "RESCHEDULE", "CANCEL"]
    patient: ManualActionPatient
    appointmentId: Optional[str] = None
    startsAt: Optional[AwareDatetime] = None
    endsAt: Optional[AwareDatetime] = None
    notes: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class ManualActionResponse(BaseModel):
    action: str
    appointment_id: Optional[str] = None
    old_appointment_id: Optional[str] = None
    new_appointment_id: Optional[str] = None
    status: Optional[str] = None
    message: str
    delivery_warning: Optional[str] = None


# ============================================================================
# Availability blocks
# ============================================================================


class AvailabilityBlockCreate(BaseModel):
    """Block the agenda on every selected weekday of a date range"""

    fromDate: date
    toDate: date
    startTime: str
    endTime: str
    weekdays: Optional[list[int]] = None  # 0=Sunday ... 6=Saturday; empty means every day
    reason: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        if not _TIME_PATTERN.match(v or ""):
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        if v and any(day < 0 or day > 6 for day in v):
            raise ValueError("Weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return v


class AvailabilityBlockResponse(BaseModel):
    id: str
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityBlockCreateResponse(BaseModel):
    message: str
    blocks: list[AvailabilityBlockResponse]


# ============================================================================
# Portal availability
# ============================================================================


class SlotResponse(BaseModel):
    starts_at: datetime
    ends_at: datetime


class PortalAvailabilityResponse(BaseModel):
    timezone: str
    month: int
    year: int
    slot_duration_minutes: int
    slots: list[SlotResponse]
    slots_by_day: dict[str, list[SlotResponse]]
    available_days: list[str]
