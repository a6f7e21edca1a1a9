"""Conversation router - dry run of the WhatsApp assistant"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...config import BOOKING_SITE_URL, DEFAULT_DOCTOR_NAME
from .state_machine import INITIAL, transition

router = APIRouter(prefix="/conversation", tags=["Conversation"])


class SimulateRequest(BaseModel):
    currentState: str = INITIAL
    input: str = Field(..., max_length=2000)
    doctorName: str = DEFAULT_DOCTOR_NAME


class SimulateResponse(BaseModel):
    next_state: str
    response_message: str
    should_end: bool


@router.post("/simulate", response_model=SimulateResponse)
async def simulate(data: SimulateRequest):
    """Run one state machine step without touching sessions or sending anything"""
    step = transition(
        data.currentState, data.input, booking_url=BOOKING_SITE_URL, doctor_name=data.doctorName
    )
    return SimulateResponse(**step._asdict())


__all__ = ["router"]
