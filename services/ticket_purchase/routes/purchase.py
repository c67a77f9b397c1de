"""Rutas de pagos (Stripe Checkout)"""
from fastapi import APIRouter, Depends, Request
from typing import Dict
import logging

from app.core.config import settings
from shared.auth.dependencies import get_current_user
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_purchase.models.purchase import (
    TicketPaymentRequest,
    MediaPassPaymentRequest,
    CheckoutResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    RecoverTicketsResponse,
    RecoverMediaPassesResponse,
)
from services.ticket_purchase.services.purchase_service import PaymentService
from services.ticket_purchase.services.stripe_service import StripeService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_stripe_service() -> StripeService:
    """Falla con ConfigurationError si STRIPE_SECRET_KEY no está configurado"""
    return StripeService()


def request_origin(request: Request) -> str:
    return (request.headers.get("origin") or settings.APP_BASE_URL).rstrip("/")


@router.post("/ticket", response_model=CheckoutResponse)
@limiter.limit(RATE_LIMITS["payment"])
async def create_ticket_payment(
    request: Request,
    payment_request: TicketPaymentRequest,
    current_user: Dict = Depends(get_current_user),
    store: TicketStore = Depends(get_ticket_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Crear sesión de Stripe Checkout para un ticket (monto libre, mínimo $10)

    Responde {url} con el checkout hospedado de Stripe.
    """
    service = PaymentService(store, stripe_service)
    url = await service.create_ticket_payment(
        current_user=current_user,
        amount=payment_request.amount,
        origin=request_origin(request),
        affiliate_code=payment_request.affiliate_code,
    )
    return {"url": url}


@router.post("/media-pass", response_model=CheckoutResponse)
@limiter.limit(RATE_LIMITS["payment"])
async def create_media_pass_payment(
    request: Request,
    payment_request: MediaPassPaymentRequest,
    current_user: Dict = Depends(get_current_user),
    store: TicketStore = Depends(get_ticket_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Crear sesión de Stripe Checkout para un media pass de fotógrafo"""
    service = PaymentService(store, stripe_service)
    url = await service.create_media_pass_payment(
        current_user=current_user,
        pass_type=payment_request.pass_type,
        name=payment_request.name,
        instagram_handle=payment_request.instagram_handle,
        origin=request_origin(request),
    )
    return {"url": url}


@router.post("/verify", response_model=VerifyPaymentResponse)
@limiter.limit(RATE_LIMITS["payment"])
async def verify_payment(
    request: Request,
    verify_request: VerifyPaymentRequest,
    store: TicketStore = Depends(get_ticket_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Confirmar un checkout tras el redirect de éxito y emitir el ticket con QR

    No requiere autenticación: Stripe es la fuente de verdad del pago.
    """
    service = PaymentService(store, stripe_service)
    return await service.verify_and_create_ticket(
        session_id=verify_request.session_id,
        user_email=verify_request.user_email,
    )


# ==================== RECUPERACIÓN ====================

@router.post("/recover-tickets", response_model=RecoverTicketsResponse)
@limiter.limit(RATE_LIMITS["payment"])
async def recover_missing_tickets(
    request: Request,
    current_user: Dict = Depends(get_current_user),
    store: TicketStore = Depends(get_ticket_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Crear los tickets de checkouts pagados que nunca se confirmaron

    Revisa las sesiones de Stripe del usuario autenticado.
    """
    service = PaymentService(store, stripe_service)
    return await service.recover_missing_tickets(current_user)


@router.post("/recover-media-passes", response_model=RecoverMediaPassesResponse)
@limiter.limit(RATE_LIMITS["payment"])
async def recover_missing_media_passes(
    request: Request,
    current_user: Dict = Depends(get_current_user),
    store: TicketStore = Depends(get_ticket_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Marcar como pagados los media passes cuyo checkout ya se cobró"""
    service = PaymentService(store, stripe_service)
    return await service.recover_missing_media_passes(current_user)
