"""Servicio de emisión de códigos QR para tickets y pases"""
from dataclasses import dataclass
from typing import Optional, Tuple
import logging

from shared.database.store import EntityType, PassRecord, TicketStore
from shared.utils.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
    TokenGenerationError,
    ValidationError,
)
from shared.utils.qr_generator import build_qr_payload

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"


@dataclass
class IssuedQR:
    entity_type: EntityType
    entity_id: str
    token: str
    qr_code_data: Optional[str]
    created: bool  # False si se retornó un token ya existente

    def to_response(self) -> dict:
        return {
            "qr_code_token": self.token,
            "qr_code_data": self.qr_code_data,
            "type": self.entity_type.value,
        }


class QRIssuanceService:
    """
    Emite el token QR de un ticket o pase y lo persiste junto al payload.

    Nunca sobreescribe un token existente: el UPDATE sólo aplica si la fila
    sigue sin token, y un token generado que no se pudo escribir se descarta.
    """

    def __init__(self, store: TicketStore):
        self.store = store

    @staticmethod
    def resolve_target(
        ticket_id: Optional[str],
        subscription_id: Optional[str],
        entity_type: Optional[str] = None,
    ) -> Tuple[EntityType, str]:
        """Validar que venga exactamente un id y que el tipo coincida"""
        if not ticket_id and not subscription_id:
            raise ValidationError("Either ticket_id or subscription_id is required")
        if ticket_id and subscription_id:
            raise ValidationError("Only one of ticket_id or subscription_id can be provided")

        target = EntityType.TICKET if ticket_id else EntityType.SUBSCRIPTION
        if entity_type is not None and entity_type != target.value:
            raise ValidationError(f"type '{entity_type}' does not match the provided id")

        return target, ticket_id or subscription_id

    async def issue_for_owner(
        self,
        owner_id: str,
        ticket_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> IssuedQR:
        """Emisión pedida por el dueño del ticket/pase (request autenticado)"""
        target, entity_id = self.resolve_target(ticket_id, subscription_id, entity_type)

        entity = await self.store.get_entity(target, entity_id)
        if entity is None or entity.user_id != owner_id:
            label = "Ticket" if target == EntityType.TICKET else "Subscription"
            raise NotFoundError(f"{label} not found")

        return await self.issue(entity)

    async def issue(self, entity: PassRecord) -> IssuedQR:
        if entity.has_token:
            logger.info(f"{entity.entity_type.value} {entity.id} ya tiene QR, retornando existente")
            return IssuedQR(entity.entity_type, entity.id, entity.qr_code_token, entity.qr_code_data, created=False)

        # Perfil antes que token: si falla, no queda ningún token generado sin uso
        user_name = await self._display_name(entity.user_id)

        try:
            token = await self.store.generate_token()
        except Exception as e:
            logger.error(f"generate_qr_token falló para {entity.entity_type.value} {entity.id}: {e}")
            raise TokenGenerationError("Failed to generate QR token") from e
        if not token:
            raise TokenGenerationError("Failed to generate QR token")

        qr_code_data = self._build_payload(entity, token, user_name)

        try:
            assigned = await self.store.assign_qr_token(entity.entity_type, entity.id, token, qr_code_data)
        except Exception as e:
            logger.error(f"No se pudo guardar QR en {entity.entity_type.value} {entity.id}: {e}")
            raise PersistenceError(f"Failed to update {entity.entity_type.value} with QR code") from e

        if not assigned:
            # Otra petición asignó el token primero; el nuestro se descarta
            current = await self.store.get_entity(entity.entity_type, entity.id)
            if current is not None and current.has_token:
                logger.info(f"Carrera de emisión en {entity.id}: se conserva el token existente")
                return IssuedQR(current.entity_type, current.id, current.qr_code_token, current.qr_code_data, created=False)
            raise PersistenceError(f"Failed to update {entity.entity_type.value} with QR code")

        logger.info(f"QR generado para {entity.entity_type.value} {entity.id}: {token[:6]}...")
        return IssuedQR(entity.entity_type, entity.id, token, qr_code_data, created=True)

    async def _display_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return UNKNOWN_USER

        try:
            profile = await self.store.get_profile(user_id)
        except Exception as e:
            raise ExternalServiceError("Failed to load user profile") from e

        if profile is None:
            return UNKNOWN_USER
        return profile.full_name or profile.email or UNKNOWN_USER

    @staticmethod
    def _build_payload(entity: PassRecord, token: str, user_name: str) -> str:
        if entity.entity_type == EntityType.SUBSCRIPTION:
            return build_qr_payload(
                entity_type=entity.entity_type.value,
                entity_id=entity.id,
                user_id=entity.user_id,
                user_name=user_name,
                token=token,
                valid_until=entity.current_period_end,
                status=entity.status,
                current_period_end=entity.current_period_end,
            )

        if entity.entity_type == EntityType.MEDIA_PASS:
            return build_qr_payload(
                entity_type=entity.entity_type.value,
                entity_id=entity.id,
                user_id=entity.user_id,
                user_name=user_name,
                token=token,
                amount=entity.amount,
                valid_until=entity.valid_until,
                pass_type=entity.pass_type,
                photographer_name=entity.photographer_name,
                instagram_handle=entity.instagram_handle,
            )

        return build_qr_payload(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            user_id=entity.user_id,
            user_name=user_name,
            token=token,
            event_id=entity.event_id,
            amount=entity.amount,
            valid_until=entity.valid_until,
        )
