"""Validación de access tokens de Supabase Auth"""
import hashlib
import logging
from typing import Optional, Dict

import httpx
from jose import jwt, JWTError

from app.core.config import settings
from shared.cache.redis_client import cache_get, cache_set
from shared.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 600  # 10 minutos


def get_token_cache_key(token: str) -> str:
    '''Generar clave de caché para un token (usando hash para no almacenar el token completo)'''
    token_hash = hashlib.sha256(token.encode()).hexdigest()
    return f'jwt:validated:{token_hash[:16]}'


async def _cached_payload(cache_key: str) -> Optional[Dict]:
    try:
        return await cache_get(cache_key)
    except Exception as e:
        # Redis caído no debe impedir autenticar contra Supabase
        logger.warning(f'Cache de tokens no disponible: {e}')
        return None


async def _store_payload(cache_key: str, payload: Dict):
    try:
        await cache_set(cache_key, payload, expire=CACHE_TTL_SECONDS)
    except Exception as e:
        logger.warning(f'No se pudo cachear token validado: {e}')


async def verify_supabase_token(token: str) -> Optional[Dict]:
    '''
    Verifica un JWT de Supabase delegando la validación al Auth server
    (GET /auth/v1/user). Cachea el resultado en Redis por 10 minutos.

    Retorna None si el token no es válido.
    '''
    if not settings.SUPABASE_URL:
        raise ConfigurationError('SUPABASE_URL no está configurado')

    cache_key = get_token_cache_key(token)
    cached = await _cached_payload(cache_key)
    if cached:
        return cached

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(
                f'{settings.SUPABASE_URL}/auth/v1/user',
                headers={
                    'apikey': settings.SUPABASE_ANON_KEY,
                    'Authorization': f'Bearer {token}'
                }
            )
    except httpx.HTTPError as e:
        logger.error(f'Error validando token con Supabase: {e}')
        return None

    if response.status_code != 200:
        return None

    user_data = response.json()

    # Claims sin verificar: la firma ya la validó Supabase
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        claims = {}

    payload = {
        'sub': user_data.get('id'),
        'user_id': user_data.get('id'),
        'email': user_data.get('email'),
        'exp': claims.get('exp'),
        'user_metadata': user_data.get('user_metadata') or {},
    }

    await _store_payload(cache_key, payload)
    return payload
