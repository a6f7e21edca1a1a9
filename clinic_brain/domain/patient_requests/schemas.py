"""Patient request schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import AwareDatetime, BaseModel

from ..scheduling.schemas import PatientSummary


class PortalBookingRequest(BaseModel):
    """Requested window for a booking or a move of the active appointment"""

    startsAt: AwareDatetime
    endsAt: AwareDatetime


class PortalCancelRequest(BaseModel):
    appointmentId: str
    reason: Optional[str] = None


class PatientRequestReview(BaseModel):
    action: Literal["APPROVE", "REJECT"]
    reason: Optional[str] = None


class PatientRequestResponse(BaseModel):
    """Schema for patient request response"""

    id: str
    request_type: str
    status: str
    source: str
    appointment_id: Optional[str] = None
    requested_starts_at: datetime
    requested_ends_at: datetime
    current_starts_at: Optional[datetime] = None
    current_ends_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    review_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    patient: Optional[PatientSummary] = None

    class Config:
        from_attributes = True


class PatientRequestSubmitted(BaseModel):
    request_id: str
    status: str
    message: str
    delivery_warning: Optional[str] = None


class PatientRequestReviewed(BaseModel):
    request_id: str
    status: str
    appointment_id: Optional[str] = None
    delivery_warning: Optional[str] = None


class PortalCancelResponse(BaseModel):
    appointment_id: str
    status: str
    message: str
    delivery_warning: Optional[str] = None
