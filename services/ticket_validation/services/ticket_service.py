"""Servicio de validación de tickets, suscripciones y media passes por token QR"""
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

from shared.database.store import EntityType, PassRecord, TicketStore

logger = logging.getLogger(__name__)

DEFAULT_VALIDATOR = "Door Staff"
UNKNOWN_HOLDER = "Unknown"

# Mensajes para staff (validación en puerta)
STAFF_REASONS = {
    "ticket_used": "Ticket already used",
    "ticket_expired": "Ticket expired",
    "ticket_unpaid": "Ticket not paid",
    "subscription_inactive": "Subscription not active",
    "subscription_expired": "Subscription expired",
    "media_pass_unpaid": "Media pass not paid",
    "media_pass_expired": "Media pass expired",
    "not_found": "QR code not found or invalid",
}

# Mensajes para la página pública de verificación
PUBLIC_REASONS = {
    "ticket_used": "This ticket has already been used",
    "ticket_expired": "This ticket has expired",
    "ticket_unpaid": "This ticket payment is not confirmed",
    "subscription_inactive": "This subscription is not active",
    "subscription_expired": "This monthly pass has expired",
    "media_pass_unpaid": "This media pass payment is not confirmed",
    "media_pass_expired": "This media pass has expired",
    "not_found": "This QR code is not valid or has been deactivated",
}

PUBLIC_FAILURE_REASON = "Unable to verify ticket at this time"


def _is_past(moment: Optional[datetime], now: datetime) -> bool:
    if moment is None:
        return False
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return now > moment


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TicketValidationService:
    """Resolver un token QR y decidir si da acceso"""

    def __init__(self, store: TicketStore):
        self.store = store

    async def _holder_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return UNKNOWN_HOLDER
        profile = await self.store.get_profile(user_id)
        if profile is None:
            return UNKNOWN_HOLDER
        return profile.full_name or profile.email or UNKNOWN_HOLDER

    def _info(self, record: PassRecord, holder: str) -> Dict:
        if record.entity_type == EntityType.TICKET:
            return {
                "id": record.id,
                "amount": record.amount,
                "event_id": record.event_id,
                "user_name": holder,
                "created_at": _iso(record.created_at),
                "valid_until": _iso(record.valid_until),
                "used_at": _iso(record.used_at),
                "used_by": record.used_by,
            }
        if record.entity_type == EntityType.SUBSCRIPTION:
            return {
                "id": record.id,
                "status": record.status,
                "user_name": holder,
                "current_period_end": _iso(record.current_period_end),
                "created_at": _iso(record.created_at),
            }
        return {
            "id": record.id,
            "pass_type": record.pass_type,
            "photographer_name": record.photographer_name,
            "instagram_handle": record.instagram_handle,
            "amount": record.amount,
            "user_name": holder,
            "created_at": _iso(record.created_at),
            "valid_until": _iso(record.valid_until),
            "status": record.status,
        }

    @staticmethod
    def rejection_code(record: PassRecord, now: datetime) -> Optional[str]:
        """Código de rechazo, o None si el pase es válido en `now`"""
        if record.entity_type == EntityType.TICKET:
            if record.used_at:
                return "ticket_used"
            if _is_past(record.valid_until, now):
                return "ticket_expired"
            if record.status != "paid":
                return "ticket_unpaid"
            return None

        if record.entity_type == EntityType.SUBSCRIPTION:
            if record.status != "active":
                return "subscription_inactive"
            if _is_past(record.current_period_end, now):
                return "subscription_expired"
            return None

        if record.status != "paid":
            return "media_pass_unpaid"
        if _is_past(record.valid_until, now):
            return "media_pass_expired"
        return None

    def _result(self, record: PassRecord, holder: str, valid: bool, reason: Optional[str] = None) -> Dict:
        result = {
            "valid": valid,
            "type": record.entity_type.value,
            f"{record.entity_type.value}_info": self._info(record, holder),
        }
        if reason:
            result["reason"] = reason
        return result

    async def validate(self, qr_code_token: str, validator_name: Optional[str] = None) -> Dict:
        """
        Validación en puerta (staff). Un ticket válido queda marcado como usado;
        suscripciones y media passes no se consumen.
        """
        logger.info(f"Validando QR: {qr_code_token[:6]}...")
        now = datetime.now(timezone.utc)

        record = await self.store.find_by_token(qr_code_token)
        if record is None:
            return {"valid": False, "reason": STAFF_REASONS["not_found"]}

        holder = await self._holder_name(record.user_id)
        code = self.rejection_code(record, now)
        if code:
            logger.info(f"QR {qr_code_token[:6]}... rechazado: {code}")
            return self._result(record, holder, False, STAFF_REASONS[code])

        if record.entity_type == EntityType.TICKET:
            used_by = validator_name or DEFAULT_VALIDATOR
            marked = await self.store.mark_ticket_used(record.id, used_by=used_by, used_at=now)
            if not marked:
                # Otro escáner lo marcó entre la lectura y el UPDATE
                logger.warning(f"Ticket {record.id} ya fue usado por otra validación")
                return self._result(record, holder, False, STAFF_REASONS["ticket_used"])
            logger.info(f"Ticket {record.id} marcado como usado por {used_by}")

        return self._result(record, holder, True)

    async def verify_public(self, qr_code_token: str) -> Dict:
        """Verificación pública de sólo lectura; nunca marca como usado"""
        try:
            record = await self.store.find_by_token(qr_code_token)
            if record is None:
                return {"valid": False, "reason": PUBLIC_REASONS["not_found"]}

            holder = await self._holder_name(record.user_id)
            code = self.rejection_code(record, datetime.now(timezone.utc))
            if code:
                return self._result(record, holder, False, PUBLIC_REASONS[code])
            return self._result(record, holder, True)
        except Exception as e:
            logger.error(f"Error en verificación pública de {qr_code_token[:6]}...: {e}")
            return {"valid": False, "reason": PUBLIC_FAILURE_REASON}
