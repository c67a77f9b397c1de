"""Rutas del gate de acceso (roles y estado de aprobación)"""
from fastapi import APIRouter, Depends, Request
from typing import Dict
import logging

from shared.auth.dependencies import get_current_user, get_user_roles
from shared.auth.roles import parse_approval_status
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.exceptions import ExternalServiceError
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.access.models.access import AccessResponse
from services.access.services.access_gate import (
    can_validate_tickets,
    can_view_admin,
    display_roles,
    ordered_roles,
    primary_role,
    resolve_view,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=AccessResponse)
@limiter.limit(RATE_LIMITS["public"])
async def get_my_access(
    request: Request,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_user)
):
    """
    Roles y vista que corresponde al usuario autenticado

    Si no se puede leer roles o perfil responde 503; nunca asume 'user' ni 'approved'.
    """
    user_id = current_user["user_id"]
    roles = await get_user_roles(user_id, store)

    try:
        profile = await store.get_profile(user_id)
        approval_status = parse_approval_status(profile.approval_status if profile else None)
    except Exception as e:
        logger.error(f"Error obteniendo estado de aprobación de {user_id}: {e}")
        raise ExternalServiceError("No se pudo obtener el estado de aprobación", status_code=503) from e

    return {
        "roles": [role.value for role in ordered_roles(roles)],
        "display_roles": [role.value for role in display_roles(roles)],
        "primary_role": primary_role(roles).value,
        "approval_status": approval_status.value,
        "view": resolve_view(approval_status),
        "can_view_admin": can_view_admin(roles),
        "can_validate_tickets": can_validate_tickets(roles),
    }
