"""
WhatsApp gateway webhook handler.
Ignored events are acknowledged with 202 so the gateway does not retry them.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ..messaging.service import MessagingService, get_messaging_service
from .security import read_json_body, verify_webhook_api_key
from .service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhook", tags=["webhooks"], dependencies=[Depends(verify_webhook_api_key)]
)


def get_webhook_service(
    db: Session = Depends(get_db),
    messaging: MessagingService = Depends(get_messaging_service),
) -> WebhookService:
    """Dependency injection for WebhookService"""
    return WebhookService(db, messaging)


async def _handle(request: Request, service: WebhookService) -> JSONResponse:
    payload = await read_json_body(request)
    result = await service.ingest_inbound_message(payload)

    if result.ignored:
        return JSONResponse(
            status_code=202,
            content={
                "status": "ignored",
                "reason": result.reason,
                "message": result.message,
                "payload": result.payload,
            },
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "processed",
            "payload": result.payload,
            "conversation": result.conversation.model_dump() if result.conversation else None,
            "delivery_warning": result.delivery_warning,
        },
    )


@router.post("")
async def handle_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    return await _handle(request, service)


@router.post("/evolution")
async def handle_evolution_webhook(
    request: Request, service: WebhookService = Depends(get_webhook_service)
):
    """Same handler under the path the gateway is usually configured with"""
    return await _handle(request, service)


__all__ = ["router"]
