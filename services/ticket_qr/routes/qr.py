"""Rutas de generación y descarga de códigos QR"""
from fastapi import APIRouter, Depends, Request, Query
from fastapi.responses import Response
from typing import Dict

from app.core.config import settings
from shared.auth.dependencies import get_current_user
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.exceptions import NotFoundError
from shared.utils.qr_generator import build_download_filename, build_qr_image_url, build_verification_url
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_qr.models.qr import GenerateQRRequest, QRCodeResponse
from services.ticket_qr.services.issuance_service import QRIssuanceService
from services.ticket_qr.services.presenter import fetch_qr_image


router = APIRouter()


@router.post("/generate", response_model=QRCodeResponse)
@limiter.limit(RATE_LIMITS["qr"])
async def generate_qr_code(
    request: Request,
    qr_request: GenerateQRRequest,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_user)
):
    """
    Generar (o retornar el existente) código QR de un ticket o suscripción
    del usuario autenticado.

    Requiere exactamente uno de ticket_id / subscription_id.
    """
    service = QRIssuanceService(store)
    issued = await service.issue_for_owner(
        owner_id=current_user["user_id"],
        ticket_id=qr_request.ticket_id,
        subscription_id=qr_request.subscription_id,
        entity_type=qr_request.type,
    )
    return issued.to_response()


@router.get("/download")
@limiter.limit(RATE_LIMITS["qr"])
async def download_qr_code(
    request: Request,
    token: str = Query(..., min_length=1),
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_user)
):
    """Descargar el PNG del QR (render delegado al endpoint externo)"""
    entity = await store.find_by_token(token)
    if entity is None or entity.user_id != current_user["user_id"]:
        raise NotFoundError("QR code not found")

    origin = request.headers.get("origin") or settings.APP_BASE_URL
    image_url = build_qr_image_url(build_verification_url(origin, token))
    content = await fetch_qr_image(image_url)

    filename = build_download_filename(entity.entity_type.value, token)
    return Response(
        content=content,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
