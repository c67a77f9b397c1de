"""Dependencies de autenticación para FastAPI"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict, Set
import logging

from shared.auth.roles import AppRole, parse_roles
from shared.auth.supabase_validator import verify_supabase_token
from shared.database.store import TicketStore, get_ticket_store
from shared.utils.exceptions import AuthenticationError, AuthorizationError, ExternalServiceError

logger = logging.getLogger(__name__)

# auto_error=False: la ausencia de header se responde como AuthenticationError (401)
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict:
    '''Obtener usuario actual desde el access token de Supabase'''
    if credentials is None:
        raise AuthenticationError('Authentication required')

    payload = await verify_supabase_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError('User not authenticated')

    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        raise AuthenticationError('Token inválido: falta user_id')

    return {
        'user_id': user_id,
        'email': payload.get('email'),
    }


async def get_user_roles(
    user_id: str,
    store: TicketStore,
) -> Set[AppRole]:
    '''
    Leer roles desde user_roles.

    Un fallo de lectura NO se convierte en rol 'user': se propaga como
    ExternalServiceError para no abrir ni cerrar acceso silenciosamente.
    '''
    try:
        raw_roles = await store.get_user_roles(user_id)
    except Exception as e:
        logger.error(f'Error obteniendo roles de {user_id}: {e}')
        raise ExternalServiceError('No se pudieron obtener los roles del usuario', status_code=503) from e

    try:
        return parse_roles(raw_roles)
    except ValueError as e:
        logger.error(f'Rol desconocido para {user_id}: {raw_roles}')
        raise ExternalServiceError('Roles de usuario inválidos', status_code=503) from e


def require_roles(*allowed: AppRole):
    '''Crear dependency que exige al menos uno de los roles indicados'''
    async def dependency(
        current_user: Dict = Depends(get_current_user),
        store: TicketStore = Depends(get_ticket_store),
    ) -> Dict:
        roles = await get_user_roles(current_user['user_id'], store)
        if not roles.intersection(allowed):
            raise AuthorizationError('Admin access required' if allowed == (AppRole.ADMIN,) else 'Acceso denegado')
        return {**current_user, 'roles': roles}

    return dependency


get_current_admin = require_roles(AppRole.ADMIN)

# Validación en puerta: admin o moderator
get_current_staff = require_roles(AppRole.ADMIN, AppRole.MODERATOR)
