"""Servicio de pagos: inicio de checkout, confirmación y recuperación de tickets y media passes"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

from app.core.config import settings
from shared.database.store import DuplicateRecordError, PassRecord, TicketStore, rollback_after_error
from shared.utils.exceptions import (
    AppError,
    AuthenticationError,
    InvalidAmountError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from services.ticket_purchase.services.stripe_service import StripeService
from services.ticket_qr.services.issuance_service import QRIssuanceService

logger = logging.getLogger(__name__)

# Montos en centavos por tipo de media pass
MEDIA_PASS_AMOUNTS = {"30": 3000, "150": 15000}

MEDIA_PASS_NAMES = {
    "30": "SkateBurn Media Pass - Standard ($30)",
    "150": "SkateBurn Media Pass - Premium ($150)",
}


def next_event_valid_until(now: datetime, event_weekday: int, grace_days: int) -> datetime:
    """
    Vigencia de un ticket: fin del día, grace_days después del próximo evento semanal.
    Si hoy es día de evento, el evento es hoy.
    """
    days_ahead = (event_weekday - now.weekday()) % 7
    event_date = (now + timedelta(days=days_ahead)).date()
    last_day = event_date + timedelta(days=grace_days)
    return datetime(last_day.year, last_day.month, last_day.day, 23, 59, 59, 999999, tzinfo=timezone.utc)


class PaymentService:
    """Inicio de pagos con Stripe y registro de entidades pendientes"""

    def __init__(self, store: TicketStore, stripe_service: StripeService):
        self.store = store
        self.stripe = stripe_service

    @staticmethod
    def validate_amount(amount: Optional[int]) -> int:
        minimum = settings.TICKET_MIN_AMOUNT
        if amount is None or amount < minimum:
            logger.warning(f"Monto inválido: {amount}")
            raise InvalidAmountError(f"Invalid amount. Minimum ${minimum / 100:.0f} required.")
        return amount

    @staticmethod
    def _require_email(current_user: Dict) -> str:
        email = current_user.get("email")
        if not email:
            raise AuthenticationError("User not authenticated or email not available")
        return email

    async def create_ticket_payment(
        self,
        current_user: Dict,
        amount: Optional[int],
        origin: str,
        affiliate_code: Optional[str] = None,
    ) -> str:
        """Crear sesión de checkout para un ticket y registrar el ticket 'pending'"""
        email = self._require_email(current_user)
        amount = self.validate_amount(amount)
        logger.info(f"Creando pago de ticket para {email}: ${amount / 100:.2f}")

        session = await self.stripe.create_checkout_session(
            email=email,
            line_items=[self.stripe.ticket_line_item(amount)],
            success_url=f"{origin}/tickets?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/tickets?canceled=true",
            metadata={
                "user_id": current_user["user_id"],
                "ticket_type": "single_event",
                "user_email": email,
                "affiliate_code": affiliate_code or "",
            },
        )

        try:
            await self.store.create_ticket(
                user_id=current_user["user_id"],
                amount=amount,
                currency=self.stripe.currency,
                stripe_session_id=session.id,
                status="pending",
            )
        except Exception as e:
            logger.error(f"No se pudo registrar ticket pendiente para sesión {session.id}: {e}")
            raise PersistenceError("Failed to record pending ticket") from e

        return session.url

    async def create_media_pass_payment(
        self,
        current_user: Dict,
        pass_type: str,
        name: str,
        instagram_handle: str,
        origin: str,
    ) -> str:
        email = self._require_email(current_user)

        price_id = (
            settings.STRIPE_MEDIA_PASS_PRICE_STANDARD if pass_type == "30"
            else settings.STRIPE_MEDIA_PASS_PRICE_PREMIUM
        )
        logger.info(f"Creando pago de media pass {MEDIA_PASS_NAMES[pass_type]} para {email}")

        session = await self.stripe.create_checkout_session(
            email=email,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{origin}/photographers?success=true&pass_type={pass_type}",
            cancel_url=f"{origin}/photographers?canceled=true",
            metadata={
                "pass_type": pass_type,
                "photographer_name": name,
                "instagram_handle": instagram_handle,
                "user_id": current_user["user_id"],
            },
        )

        try:
            await self.store.create_media_pass(
                user_id=current_user["user_id"],
                stripe_session_id=session.id,
                pass_type=pass_type,
                photographer_name=name,
                instagram_handle=instagram_handle,
                amount=MEDIA_PASS_AMOUNTS[pass_type],
            )
        except Exception as e:
            logger.error(f"No se pudo registrar media pass para sesión {session.id}: {e}")
            raise PersistenceError("Failed to record media pass request") from e

        return session.url

    async def verify_and_create_ticket(self, session_id: str, user_email: Optional[str] = None) -> Dict:
        """
        Confirmar un checkout pagado: marcar (o crear) el ticket como 'paid' y emitir su QR.

        Idempotente por sesión: si el ticket ya está pagado se retorna tal cual.
        """
        session = await self.stripe.retrieve_session(session_id)
        logger.info(f"Sesión {session_id}: payment_status={session.payment_status}, amount={session.amount_total}")

        if session.payment_status != "paid":
            raise ValidationError(f"Payment not completed. Status: {session.payment_status}")

        metadata = session.metadata or {}
        user_id = metadata.get("user_id")
        if not user_id and user_email:
            user_id = await self.store.find_user_id_by_email(user_email)
        if not user_id:
            raise NotFoundError("Could not find user for this payment")

        valid_until = next_event_valid_until(
            datetime.now(timezone.utc), settings.EVENT_WEEKDAY, settings.TICKET_GRACE_DAYS
        )

        existing = await self.store.find_ticket_by_session(session_id)
        if existing is not None and existing.status == "paid":
            logger.info(f"Ticket ya existe para sesión {session_id}")
            ticket = existing
            message = "Ticket already exists"
        elif existing is not None:
            ticket = await self.store.mark_ticket_paid(
                existing.id,
                amount=session.amount_total,
                currency=session.currency,
                valid_until=valid_until,
                payment_intent_id=session.payment_intent,
            )
            message = "Ticket created successfully"
        else:
            try:
                ticket = await self.store.create_ticket(
                    user_id=user_id,
                    amount=session.amount_total,
                    currency=session.currency,
                    stripe_session_id=session_id,
                    status="paid",
                    valid_until=valid_until,
                )
                message = "Ticket created successfully"
            except DuplicateRecordError:
                # Un verify concurrente de la misma sesión insertó primero
                logger.info(f"Ticket de sesión {session_id} creado por otra petición")
                ticket = await self.store.find_ticket_by_session(session_id)
                if ticket is None:
                    raise PersistenceError("Failed to record ticket")
                message = "Ticket already exists"

        return {
            "success": True,
            "message": message,
            "ticket_id": ticket.id,
            "qr_code_token": await self._issue_qr(ticket),
        }

    async def _issue_qr(self, record: PassRecord) -> Optional[str]:
        """Si la emisión falla la fila queda pagada sin QR y la corrige el barrido"""
        try:
            issued = await QRIssuanceService(self.store).issue(record)
        except AppError as e:
            logger.warning(f"{record.entity_type.value} {record.id} pagado sin QR, pendiente de barrido: {e.message}")
            await rollback_after_error(self.store, f"{record.entity_type.value} {record.id}")
            return record.qr_code_token
        return issued.token

    # ==================== RECUPERACIÓN ====================

    @staticmethod
    def _belongs_to(session, user_id: str, email: str) -> bool:
        metadata = session.metadata or {}
        emails = {(session.customer_email or "").lower(), (metadata.get("user_email") or "").lower()}
        return metadata.get("user_id") == user_id or email.lower() in emails

    @staticmethod
    def is_media_pass_session(session) -> bool:
        """Sesiones antiguas sin metadata se clasifican por monto"""
        metadata = session.metadata or {}
        if metadata.get("pass_type"):
            return True
        if metadata.get("ticket_type"):
            return False
        return session.amount_total in MEDIA_PASS_AMOUNTS.values()

    async def _paid_sessions(self, current_user: Dict) -> List:
        """
        Sesiones de checkout pagadas del usuario.

        Con customer en Stripe se listan las suyas; si no, las últimas de la
        cuenta filtradas por user_id en metadata o por email.
        """
        email = self._require_email(current_user)
        customer_id = await self.stripe.find_customer_id(email)
        sessions = await self.stripe.list_checkout_sessions(customer_id=customer_id)
        if not customer_id:
            sessions = [s for s in sessions if self._belongs_to(s, current_user["user_id"], email)]

        paid = [s for s in sessions if s.payment_status == "paid" and s.mode == "payment"]
        logger.info(f"{len(paid)} sesiones pagadas encontradas para {email}")
        return paid

    async def _holder_name(self, current_user: Dict) -> str:
        profile = await self.store.get_profile(current_user["user_id"])
        if profile is not None and (profile.full_name or profile.email):
            return profile.full_name or profile.email
        return current_user["email"]

    async def recover_missing_tickets(self, current_user: Dict) -> Dict:
        """
        Crear (o marcar como pagado) el ticket de cada checkout pagado que no lo tenga.

        Cubre el caso en que el usuario nunca volvió del redirect de Stripe.
        Una sesión que falla se registra y no detiene el resto.
        """
        sessions = await self._paid_sessions(current_user)
        valid_until = next_event_valid_until(
            datetime.now(timezone.utc), settings.EVENT_WEEKDAY, settings.TICKET_GRACE_DAYS
        )

        created = []
        for session in sessions:
            if self.is_media_pass_session(session):
                continue
            try:
                ticket = await self._recover_ticket(session, current_user["user_id"], valid_until)
            except Exception as e:
                logger.error(f"No se pudo recuperar ticket de sesión {session.id}: {e}")
                await rollback_after_error(self.store, f"sesión {session.id}")
                continue
            if ticket is not None:
                created.append({"session_id": session.id, "ticket_id": ticket.id, "amount": session.amount_total})

        logger.info(f"Recuperación de tickets terminada. Creados: {len(created)}")
        return {
            "success": True,
            "message": (
                f"Found and created {len(created)} missing ticket(s)!" if created
                else "No missing tickets found"
            ),
            "tickets_created": len(created),
            "created_tickets": created,
        }

    async def _recover_ticket(self, session, user_id: str, valid_until: datetime) -> Optional[PassRecord]:
        existing = await self.store.find_ticket_by_session(session.id)
        if existing is not None and existing.status == "paid":
            return None

        if existing is not None:
            ticket = await self.store.mark_ticket_paid(
                existing.id,
                amount=session.amount_total,
                currency=session.currency,
                valid_until=valid_until,
                payment_intent_id=session.payment_intent,
            )
        else:
            try:
                ticket = await self.store.create_ticket(
                    user_id=user_id,
                    amount=session.amount_total,
                    currency=session.currency,
                    stripe_session_id=session.id,
                    status="paid",
                    valid_until=valid_until,
                )
            except DuplicateRecordError:
                return None

        logger.info(f"Ticket {ticket.id} recuperado para sesión {session.id}")
        await self._issue_qr(ticket)
        return ticket

    async def recover_missing_media_passes(self, current_user: Dict) -> Dict:
        """Marcar como pagado (o crear) el media pass de cada checkout de media pass pagado"""
        sessions = await self._paid_sessions(current_user)
        valid_until = next_event_valid_until(
            datetime.now(timezone.utc), settings.EVENT_WEEKDAY, settings.TICKET_GRACE_DAYS
        )

        created = []
        for session in sessions:
            if not self.is_media_pass_session(session):
                continue
            try:
                media_pass = await self._recover_media_pass(session, current_user, valid_until)
            except Exception as e:
                logger.error(f"No se pudo recuperar media pass de sesión {session.id}: {e}")
                await rollback_after_error(self.store, f"sesión {session.id}")
                continue
            if media_pass is not None:
                created.append(media_pass)

        logger.info(f"Recuperación de media passes terminada. Creados: {len(created)}")
        return {
            "success": True,
            "created_count": len(created),
            "created_media_passes": [
                {
                    "id": media_pass.id,
                    "pass_type": media_pass.pass_type,
                    "amount": media_pass.amount,
                    "status": media_pass.status,
                    "valid_until": media_pass.valid_until,
                    "qr_code_token": media_pass.qr_code_token,
                }
                for media_pass in created
            ],
        }

    async def _recover_media_pass(self, session, current_user: Dict, valid_until: datetime) -> Optional[PassRecord]:
        existing = await self.store.find_media_pass_by_session(session.id)
        if existing is not None and existing.status == "paid":
            return None

        if existing is not None:
            media_pass = await self.store.mark_media_pass_paid(existing.id, valid_until=valid_until)
        else:
            metadata = session.metadata or {}
            pass_type = metadata.get("pass_type") or (
                "30" if session.amount_total == MEDIA_PASS_AMOUNTS["30"] else "150"
            )
            media_pass = await self.store.create_media_pass(
                user_id=current_user["user_id"],
                stripe_session_id=session.id,
                pass_type=pass_type,
                photographer_name=metadata.get("photographer_name") or await self._holder_name(current_user),
                instagram_handle=metadata.get("instagram_handle") or "",
                amount=session.amount_total,
                status="paid",
                valid_until=valid_until,
            )

        logger.info(f"Media pass {media_pass.id} recuperado para sesión {session.id}")
        media_pass.qr_code_token = await self._issue_qr(media_pass)
        return media_pass
