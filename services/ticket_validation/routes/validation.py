"""Rutas de validación de tickets"""
from fastapi import APIRouter, Depends, Request
from typing import Dict

from shared.auth.dependencies import get_current_staff
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_validation.models.ticket import (
    TicketValidationRequest,
    PublicVerificationRequest,
    TicketValidationResponse,
)
from services.ticket_validation.services.ticket_service import TicketValidationService


router = APIRouter()


@router.post("/validate", response_model=TicketValidationResponse, response_model_exclude_none=True)
@limiter.limit(RATE_LIMITS["validation"])
async def validate_ticket(
    request: Request,
    validation_request: TicketValidationRequest,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_staff)
):
    """
    Validar QR en la puerta del evento

    Requiere rol admin o moderator. Un ticket válido queda marcado como usado.
    """
    service = TicketValidationService(store)
    return await service.validate(
        qr_code_token=validation_request.qr_code_token,
        validator_name=validation_request.validator_name,
    )


@router.post("/verify-public", response_model=TicketValidationResponse, response_model_exclude_none=True)
@limiter.limit(RATE_LIMITS["public"])
async def verify_ticket_public(
    request: Request,
    verification_request: PublicVerificationRequest,
    store: TicketStore = Depends(get_ticket_store),
):
    """Verificación pública (sin autenticación) de un código QR"""
    service = TicketValidationService(store)
    return await service.verify_public(verification_request.qr_code_token)
