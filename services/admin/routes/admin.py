"""Rutas de administración"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Dict

from shared.auth.dependencies import get_current_admin
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.admin.models.admin import DeleteTicketRequest, DeleteTicketResponse
from services.admin.services.tickets_admin_service import TicketsAdminService
from services.ticket_qr.models.qr import BackfillResponse
from services.ticket_qr.services.backfill_service import QRBackfillService


router = APIRouter()


# ==================== TICKETS ====================

@router.post("/tickets/delete", response_model=DeleteTicketResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def delete_ticket(
    request: Request,
    delete_request: DeleteTicketRequest,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_admin)
):
    """
    Eliminar un ticket

    Requiere rol admin.
    """
    service = TicketsAdminService(store)
    return await service.delete_ticket(delete_request.ticket_id, admin_id=current_user["user_id"])


# ==================== QR CODES ====================

@router.post("/fix-missing-qr-codes", response_model=BackfillResponse, response_model_exclude_none=True)
@limiter.limit(RATE_LIMITS["admin"])
async def fix_missing_qr_codes(
    request: Request,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_admin)
):
    """
    Emitir QR para todos los tickets pagados que no tienen uno

    El mismo barrido corre periódicamente como tarea Celery.
    """
    result = await QRBackfillService(store).run()
    if not result.success:
        return JSONResponse(status_code=500, content=result.to_response())
    return result.to_response()
