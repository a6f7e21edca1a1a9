"""Scheduling repository - Database operations for appointments, blocks and patients"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AppointmentStatus, AvailabilityBlock, Patient, Professional


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def list_appointments(
        db: Session,
        professional_id: str,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> list[Appointment]:
        """Get a professional's appointments ordered by start"""
        query = (
            db.query(Appointment)
            .options(joinedload(Appointment.patient))
            .filter(Appointment.professional_id == professional_id)
        )
        if starts_from is not None:
            query = query.filter(Appointment.starts_at >= starts_from)
        if starts_to is not None:
            query = query.filter(Appointment.starts_at <= starts_to)
        return query.order_by(Appointment.starts_at.asc()).all()

    @staticmethod
    def get_appointment(db: Session, professional_id: str, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.professional_id == professional_id)
            .first()
        )

    @staticmethod
    def find_overlapping(
        db: Session,
        professional_id: str,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        """First active appointment overlapping ``[starts_at, ends_at)``"""
        query = db.query(Appointment).filter(
            Appointment.professional_id == professional_id,
            Appointment.status.in_(AppointmentStatus.ACTIVE),
            Appointment.starts_at < ends_at,
            Appointment.ends_at > starts_at,
        )
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        return query.order_by(Appointment.starts_at.asc()).first()

    @staticmethod
    def list_active_overlapping(
        db: Session, professional_id: str, starts_at: datetime, ends_at: datetime
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.professional_id == professional_id,
                Appointment.status.in_(AppointmentStatus.ACTIVE),
                Appointment.starts_at < ends_at,
                Appointment.ends_at > starts_at,
            )
            .all()
        )

    @staticmethod
    def next_active_for_patient(
        db: Session, professional_id: str, patient_id: str, now: datetime
    ) -> Optional[Appointment]:
        """The patient's next future appointment that is still active"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.professional_id == professional_id,
                Appointment.patient_id == patient_id,
                Appointment.status.in_(AppointmentStatus.ACTIVE),
                Appointment.starts_at > now,
            )
            .order_by(Appointment.starts_at.asc())
            .first()
        )

    @staticmethod
    def list_reminder_candidates(db: Session, window_start: datetime, window_end: datetime) -> list[Appointment]:
        """Active appointments starting within ``[window_start, window_end]``, across all tenants"""
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.professional))
            .filter(
                Appointment.status.in_(AppointmentStatus.ACTIVE),
                Appointment.starts_at >= window_start,
                Appointment.starts_at <= window_end,
            )
            .order_by(Appointment.starts_at.asc())
            .all()
        )

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        """Stage a new appointment; the caller owns the transaction"""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment


class AvailabilityBlockRepository:
    """Repository for professional availability blocks"""

    @staticmethod
    def find_overlapping(
        db: Session, professional_id: str, starts_at: datetime, ends_at: datetime
    ) -> Optional[AvailabilityBlock]:
        return (
            db.query(AvailabilityBlock)
            .filter(
                AvailabilityBlock.professional_id == professional_id,
                AvailabilityBlock.starts_at < ends_at,
                AvailabilityBlock.ends_at > starts_at,
            )
            .order_by(AvailabilityBlock.starts_at.asc())
            .first()
        )

    @staticmethod
    def list_overlapping(
        db: Session, professional_id: str, starts_at: datetime, ends_at: datetime
    ) -> list[AvailabilityBlock]:
        return (
            db.query(AvailabilityBlock)
            .filter(
                AvailabilityBlock.professional_id == professional_id,
                AvailabilityBlock.starts_at < ends_at,
                AvailabilityBlock.ends_at > starts_at,
            )
            .all()
        )

    @staticmethod
    def list_blocks(
        db: Session,
        professional_id: str,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> list[AvailabilityBlock]:
        query = db.query(AvailabilityBlock).filter(AvailabilityBlock.professional_id == professional_id)
        if starts_from is not None:
            query = query.filter(AvailabilityBlock.starts_at >= starts_from)
        if starts_to is not None:
            query = query.filter(AvailabilityBlock.starts_at <= starts_to)
        return query.order_by(AvailabilityBlock.starts_at.asc()).all()

    @staticmethod
    def get_block(db: Session, professional_id: str, block_id: str) -> Optional[AvailabilityBlock]:
        return (
            db.query(AvailabilityBlock)
            .filter(AvailabilityBlock.id == block_id, AvailabilityBlock.professional_id == professional_id)
            .first()
        )

    @staticmethod
    def create_blocks(
        db: Session, professional_id: str, ranges: list[tuple[datetime, datetime]], reason: Optional[str]
    ) -> list[AvailabilityBlock]:
        blocks = [
            AvailabilityBlock(professional_id=professional_id, starts_at=start, ends_at=end, reason=reason)
            for start, end in ranges
        ]
        db.add_all(blocks)
        db.commit()
        for block in blocks:
            db.refresh(block)
        return blocks

    @staticmethod
    def delete_block(db: Session, block: AvailabilityBlock) -> None:
        db.delete(block)
        db.commit()


class PatientRepository:
    """Repository for patient lookups scoped to a professional"""

    @staticmethod
    def get_patient(db: Session, professional_id: str, patient_id: str) -> Optional[Patient]:
        return (
            db.query(Patient)
            .filter(Patient.id == patient_id, Patient.professional_id == professional_id)
            .first()
        )

    @staticmethod
    def get_patient_by_phone(db: Session, professional_id: str, phone_number: str) -> Optional[Patient]:
        return (
            db.query(Patient)
            .filter(Patient.professional_id == professional_id, Patient.phone_number == phone_number)
            .first()
        )

    @staticmethod
    def upsert_patient(
        db: Session, professional_id: str, phone_number: str, name: str, email: Optional[str]
    ) -> Patient:
        """Create or refresh the patient identified by ``(professional, phone)``"""
        patient = PatientRepository.get_patient_by_phone(db, professional_id, phone_number)
        if patient is None:
            patient = Patient(professional_id=professional_id, phone_number=phone_number)
            db.add(patient)
        patient.name = name
        patient.email = email
        patient.status = "ATIVO"
        db.commit()
        db.refresh(patient)
        return patient


class ProfessionalRepository:
    @staticmethod
    def get_professional(db: Session, professional_id: str) -> Optional[Professional]:
        return db.query(Professional).filter(Professional.id == professional_id).first()
