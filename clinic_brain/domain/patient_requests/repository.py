"""Patient request repository - Database operations for portal requests"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import PatientRequest, PatientRequestStatus


class PatientRequestRepository:
    @staticmethod
    def list_pending(db: Session, professional_id: str) -> list[PatientRequest]:
        """Pending requests, newest first"""
        return (
            db.query(PatientRequest)
            .options(joinedload(PatientRequest.patient))
            .filter(
                PatientRequest.professional_id == professional_id,
                PatientRequest.status == PatientRequestStatus.PENDING,
            )
            .order_by(PatientRequest.created_at.desc())
            .all()
        )

    @staticmethod
    def get_request(db: Session, professional_id: str, request_id: str) -> Optional[PatientRequest]:
        return (
            db.query(PatientRequest)
            .options(joinedload(PatientRequest.patient))
            .filter(PatientRequest.id == request_id, PatientRequest.professional_id == professional_id)
            .first()
        )

    @staticmethod
    def stage_request(db: Session, **request_data) -> PatientRequest:
        patient_request = PatientRequest(**request_data)
        db.add(patient_request)
        db.flush()
        return patient_request
