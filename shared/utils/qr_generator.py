"""Utilidades para construir las URLs del QR de un ticket o pase"""
import json
from datetime import datetime
from typing import Optional
from urllib.parse import quote, urlencode

from app.core.config import settings


def build_qr_payload(
    entity_type: str,
    entity_id: str,
    user_id: Optional[str],
    user_name: str,
    token: str,
    event_id: Optional[str] = None,
    amount: Optional[int] = None,
    valid_until: Optional[datetime] = None,
    **extra,
) -> str:
    """
    Serializar el payload descriptivo del QR.

    Sólo se usa para mostrar/auditar: la validación en puerta vuelve a
    resolver el token contra la base de datos.
    """
    payload = {
        "type": entity_type,
        "id": entity_id,
        "user_id": user_id,
        "user_name": user_name,
        "token": token,
        "event_id": event_id,
        "amount": amount,
        "valid_until": valid_until.isoformat() if valid_until else None,
    }
    for key, value in extra.items():
        payload[key] = value.isoformat() if isinstance(value, datetime) else value
    return json.dumps(payload)


def build_verification_url(origin: str, token: str) -> str:
    """URL pública que resuelve el token: <origin>/ticket?token=<token>"""
    return f"{origin.rstrip('/')}{settings.QR_VERIFY_PATH}?token={quote(token, safe='')}"


def build_qr_image_url(verification_url: str, size: Optional[int] = None) -> str:
    """Delegar el render de la imagen al endpoint externo de QR"""
    size = size or settings.QR_IMAGE_SIZE
    query = urlencode({"size": f"{size}x{size}", "data": verification_url}, quote_via=quote)
    return f"{settings.QR_IMAGE_ENDPOINT}?{query}"


def build_download_filename(entity_type: str, token: str) -> str:
    return f"qr-code-{entity_type}-{token}.png"
