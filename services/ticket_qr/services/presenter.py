"""
Presentación del código QR de un ticket o pase.

QRPresenter modela el ciclo de vida de la vista del QR como máquina de
estados explícita (UNREQUESTED -> PENDING -> READY | ERROR) en lugar de
depender del orden de renderizado. QRCodeClient es el camino autenticado
hacia POST /api/v1/qr/generate.
"""
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple
import logging

import httpx

from shared.utils.exceptions import AppError, ExternalServiceError
from shared.utils.qr_generator import (
    build_download_filename,
    build_qr_image_url,
    build_verification_url,
)

logger = logging.getLogger(__name__)

Issuer = Callable[[str, str], Awaitable[dict]]


class QRState(str, Enum):
    UNREQUESTED = "unrequested"
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class DisplayState(str, Enum):
    LOADING = "loading"
    ABSENT = "absent"
    PRESENT = "present"


async def fetch_qr_image(image_url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """Descargar el PNG renderizado por el endpoint externo"""
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.get(image_url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Error descargando imagen QR: {e}")
        raise ExternalServiceError("Failed to render QR code image") from e
    return response.content


class QRCodeClient:
    """Cliente HTTP de la API de QR, autenticado con el access token del usuario"""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def generate(self, entity_type: str, entity_id: str) -> dict:
        id_field = "ticket_id" if entity_type == "ticket" else "subscription_id"
        try:
            response = await self._client.post(
                "/api/v1/qr/generate",
                json={id_field: entity_id, "type": entity_type},
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"QR service unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise ExternalServiceError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError("QR service returned an invalid response") from e
        if not isinstance(data, dict) or not data.get("qr_code_token"):
            raise ExternalServiceError("QR service returned an invalid response")
        return data

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


class QRPresenter:
    """Estado de la vista del QR para un ticket o pase"""

    ERROR_MESSAGE = "Failed to generate QR code. Please try again."

    def __init__(self, issuer: Issuer, entity_type: str, entity_id: Optional[str], origin: str):
        self.issuer = issuer
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.origin = origin

        self.state = QRState.UNREQUESTED
        self.token: Optional[str] = None
        self.qr_code_data: Optional[str] = None
        self.error: Optional[str] = None

    @property
    def display_state(self) -> DisplayState:
        if self.state == QRState.PENDING:
            return DisplayState.LOADING
        if self.state == QRState.READY:
            return DisplayState.PRESENT
        return DisplayState.ABSENT

    @property
    def verification_url(self) -> Optional[str]:
        if self.state != QRState.READY:
            return None
        return build_verification_url(self.origin, self.token)

    @property
    def image_url(self) -> Optional[str]:
        verification_url = self.verification_url
        return build_qr_image_url(verification_url) if verification_url else None

    @property
    def download_filename(self) -> Optional[str]:
        if self.state != QRState.READY:
            return None
        return build_download_filename(self.entity_type, self.token)

    async def mount(self):
        """Al montar: emitir sólo si no hay payload cacheado y hay id"""
        if self.qr_code_data is None and self.entity_id and self.state == QRState.UNREQUESTED:
            await self._issue()

    async def regenerate(self):
        await self._issue()

    async def download(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> Tuple[str, bytes]:
        """Retorna (filename, png) para guardar la imagen"""
        if self.state != QRState.READY:
            raise AppError("QR code is not ready", status_code=409)
        content = await fetch_qr_image(self.image_url, transport=transport)
        return self.download_filename, content

    async def _issue(self):
        if self.state == QRState.PENDING or not self.entity_id:
            return

        self.state = QRState.PENDING
        self.error = None
        try:
            data = await self.issuer(self.entity_type, self.entity_id)
            token = data["qr_code_token"]
        except AppError as e:
            logger.error(f"Error generando QR para {self.entity_type} {self.entity_id}: {e.message}")
            self._fail()
            return
        except Exception:
            # Cualquier fallo deja la vista en ERROR para permitir regenerate()
            logger.exception(f"Respuesta inesperada generando QR para {self.entity_type} {self.entity_id}")
            self._fail()
            return

        self.token = token
        self.qr_code_data = data.get("qr_code_data")
        self.state = QRState.READY

    def _fail(self):
        self.state = QRState.ERROR
        self.error = self.ERROR_MESSAGE
