"""Webhook repository - tenant resolution queries"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Patient, Professional


class WebhookRepository:
    @staticmethod
    def get_professional(db: Session, professional_id: str) -> Optional[Professional]:
        return db.query(Professional).filter(Professional.id == professional_id).first()

    @staticmethod
    def get_professional_by_instance(db: Session, instance_name: str) -> Optional[Professional]:
        """Oldest professional bound to a gateway instance"""
        return (
            db.query(Professional)
            .filter(Professional.evolution_instance_name == instance_name)
            .order_by(Professional.created_at.asc())
            .first()
        )

    @staticmethod
    def get_newest_patient_by_phone(db: Session, phone_number: str) -> Optional[Patient]:
        return (
            db.query(Patient)
            .filter(Patient.phone_number == phone_number)
            .order_by(Patient.created_at.desc())
            .first()
        )

    @staticmethod
    def get_patient_for_professional(db: Session, professional_id: str, phone_number: str) -> Optional[Patient]:
        return (
            db.query(Patient)
            .filter(Patient.professional_id == professional_id, Patient.phone_number == phone_number)
            .first()
        )

    @staticmethod
    def list_professionals(db: Session, limit: int) -> list[Professional]:
        return db.query(Professional).limit(limit).all()
