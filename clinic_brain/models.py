import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DDL,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base

APPOINTMENT_OVERLAP_CONSTRAINT = "appointments_no_overlap_excl"


def generate_id():
    """Generate a unique identifier for new rows"""
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    PostgreSQL keeps a real ``timestamptz``. SQLite has no timezone support, so
    values are written as naive UTC, which keeps its text representation
    lexically ordered for the overlap trigger.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AppointmentStatus:
    SCHEDULED = "AGENDADO"
    CONFIRMED = "CONFIRMADO"
    CANCELED = "CANCELADO"
    NO_SHOW = "FALTOU"
    RESCHEDULED = "REMARCADO"

    ACTIVE = (SCHEDULED, CONFIRMED)
    TERMINAL = (CANCELED, NO_SHOW, RESCHEDULED)
    ALL = (SCHEDULED, CONFIRMED, CANCELED, NO_SHOW, RESCHEDULED)


class MessageType:
    PATIENT = "PACIENTE"
    BOT = "BOT"


class PatientRequestType:
    BOOK = "BOOK_REQUEST"
    RESCHEDULE = "RESCHEDULE_REQUEST"


class PatientRequestStatus:
    PENDING = "PENDING_PROFESSIONAL_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    phone_number = Column(String(30), nullable=True)  # Digits only
    timezone = Column(String(64), nullable=False, default="America/Sao_Paulo")
    # WhatsApp gateway (Evolution API) instance owned by this professional
    evolution_instance_name = Column(String(120), nullable=True, index=True)
    evolution_api_key = Column(Text, nullable=True)  # Fernet-encrypted
    webhook_enabled = Column(Boolean, default=True, nullable=False)
    # Reminder preferences
    reminder_d1_enabled = Column(Boolean, default=True, nullable=False)
    reminder_2h_enabled = Column(Boolean, default=True, nullable=False)
    confirmation_message = Column(Text, nullable=True)  # Custom D-1 reminder text
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    patients = relationship("Patient", back_populates="professional", cascade="all, delete-orphan")
    appointments = relationship(
        "Appointment", back_populates="professional", cascade="all, delete-orphan"
    )


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("professional_id", "phone_number", name="uq_patient_professional_phone"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    phone_number = Column(String(30), nullable=False)  # Digits only
    email = Column(String(255), nullable=True)
    status = Column(String(30), default="ATIVO", nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    professional = relationship("Professional", back_populates="patients")
    appointments = relationship("Appointment", back_populates="patient")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_professional_starts", "professional_id", "starts_at"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    patient_id = Column(
        String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)  # Exclusive
    status = Column(String(20), default=AppointmentStatus.SCHEDULED, nullable=False, index=True)
    notes = Column(Text, nullable=True)  # May hold a JSON cancellation record
    rescheduled_from_id = Column(String(36), ForeignKey("appointments.id"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    professional = relationship("Professional", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments")


class AvailabilityBlock(Base):
    __tablename__ = "availability_blocks"

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class ConversationSession(Base):
    __tablename__ = "conversation_sessions"
    __table_args__ = (
        UniqueConstraint("professional_id", "phone_number", name="uq_session_professional_phone"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    phone_number = Column(String(30), nullable=False)
    current_state = Column(String(30), nullable=False, default="INITIAL")
    is_active = Column(Boolean, default=True, nullable=False)
    last_message_at = Column(UTCDateTime, default=utcnow, nullable=False)


class Interaction(Base):
    """Append-only transcript of inbound and outbound messages"""

    __tablename__ = "interactions"
    __table_args__ = (
        UniqueConstraint(
            "professional_id", "external_message_id", name="uq_interaction_external_message"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="SET NULL"), nullable=True)
    appointment_id = Column(
        String(36), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    message_text = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False)  # PACIENTE, BOT
    external_message_id = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class PatientRequest(Base):
    """Portal request waiting for the professional's approval"""

    __tablename__ = "patient_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id = Column(
        String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    appointment_id = Column(
        String(36), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    request_type = Column(String(30), nullable=False)  # BOOK_REQUEST, RESCHEDULE_REQUEST
    status = Column(String(40), nullable=False, default=PatientRequestStatus.PENDING, index=True)
    source = Column(String(30), nullable=False, default="PATIENT_PORTAL")
    requested_starts_at = Column(UTCDateTime, nullable=False)
    requested_ends_at = Column(UTCDateTime, nullable=False)
    current_starts_at = Column(UTCDateTime, nullable=True)
    current_ends_at = Column(UTCDateTime, nullable=True)
    reviewed_at = Column(UTCDateTime, nullable=True)
    review_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    patient = relationship("Patient")


# ============================================================================
# Storage-level overlap protection for active appointments
# ============================================================================

_ACTIVE_STATUSES_SQL = ", ".join(f"'{status}'" for status in AppointmentStatus.ACTIVE)

event.listen(
    Appointment.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {APPOINTMENT_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist (professional_id WITH =, tstzrange(starts_at, ends_at, '[)') WITH &&) "
        f"WHERE (status IN ({_ACTIVE_STATUSES_SQL}))"
    ).execute_if(dialect="postgresql"),
)

_SQLITE_OVERLAP_CHECK = f"""
    SELECT RAISE(ABORT, '{APPOINTMENT_OVERLAP_CONSTRAINT}')
    WHERE EXISTS (
        SELECT 1 FROM appointments existing
        WHERE existing.professional_id = NEW.professional_id
          AND existing.id != NEW.id
          AND existing.status IN ({_ACTIVE_STATUSES_SQL})
          AND existing.starts_at < NEW.ends_at
          AND existing.ends_at > NEW.starts_at
    );
"""

event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS appointments_no_overlap_insert "
        "BEFORE INSERT ON appointments "
        f"WHEN NEW.status IN ({_ACTIVE_STATUSES_SQL}) "
        f"BEGIN {_SQLITE_OVERLAP_CHECK} END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS appointments_no_overlap_update "
        "BEFORE UPDATE OF status, starts_at, ends_at, professional_id ON appointments "
        f"WHEN NEW.status IN ({_ACTIVE_STATUSES_SQL}) "
        f"BEGIN {_SQLITE_OVERLAP_CHECK} END"
    ).execute_if(dialect="sqlite"),
)
