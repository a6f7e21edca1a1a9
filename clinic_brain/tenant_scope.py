"""
Tenant scoping dependencies.

Authentication happens upstream; requests reach this service already carrying
the professional (and, for portal calls, the patient) they act for.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import Patient, Professional

logger = logging.getLogger(__name__)


async def get_current_professional(
    x_professional_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Professional:
    """Resolve the professional from the ``X-Professional-Id`` header"""
    if not x_professional_id:
        logger.warning("⚠️ Request without professional scope")
        raise HTTPException(status_code=401, detail="Missing X-Professional-Id header")

    professional = db.query(Professional).filter(Professional.id == x_professional_id).first()
    if not professional:
        raise HTTPException(status_code=404, detail="Profissional não encontrado")
    return professional


async def get_current_patient(
    x_patient_id: Optional[str] = Header(None),
    professional: Professional = Depends(get_current_professional),
    db: Session = Depends(get_db),
) -> Patient:
    """Resolve the portal patient from ``X-Patient-Id`` within the current professional"""
    if not x_patient_id:
        raise HTTPException(status_code=401, detail="Missing X-Patient-Id header")

    patient = (
        db.query(Patient)
        .filter(Patient.id == x_patient_id, Patient.professional_id == professional.id)
        .first()
    )
    if not patient:
        raise HTTPException(status_code=404, detail="Paciente não encontrado")
    return patient
