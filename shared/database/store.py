"""
Acceso a tickets, pases y perfiles en la base de datos gestionada (Supabase).

Los servicios dependen de la interfaz TicketStore y no de SQLAlchemy;
SqlTicketStore es la implementación real sobre AsyncSession.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
import logging
import uuid

from fastapi import Depends
from sqlalchemy import select, update, delete, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.connection import get_db
from shared.database.models import Ticket, Subscription, MediaPass, Profile, UserRole

logger = logging.getLogger(__name__)


class DuplicateRecordError(Exception):
    """Ya existe una fila con la misma sesión de Stripe"""


class EntityType(str, Enum):
    TICKET = "ticket"
    SUBSCRIPTION = "subscription"
    MEDIA_PASS = "media_pass"


@dataclass
class PassRecord:
    """Fila de tickets / subscriptions / media_passes con los campos que usa el dominio"""
    entity_type: EntityType
    id: str
    user_id: Optional[str]
    status: Optional[str]
    qr_code_token: Optional[str] = None
    qr_code_data: Optional[str] = None
    event_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    valid_until: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    current_period_end: Optional[datetime] = None
    pass_type: Optional[str] = None
    photographer_name: Optional[str] = None
    instagram_handle: Optional[str] = None
    stripe_session_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def has_token(self) -> bool:
        return bool(self.qr_code_token)


@dataclass
class ProfileRecord:
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    approval_status: Optional[str] = None


class TicketStore(ABC):
    """Interfaz estrecha sobre la base de datos gestionada"""

    @abstractmethod
    async def get_entity(self, entity_type: EntityType, entity_id: str) -> Optional[PassRecord]:
        ...

    @abstractmethod
    async def find_by_token(self, token: str) -> Optional[PassRecord]:
        """Buscar token en tickets, luego subscriptions, luego media_passes"""

    @abstractmethod
    async def generate_token(self) -> str:
        """Invoca la función generate_qr_token() de la base de datos"""

    @abstractmethod
    async def assign_qr_token(
        self, entity_type: EntityType, entity_id: str, token: str, qr_code_data: Optional[str]
    ) -> bool:
        """
        Escribir token y payload en un solo UPDATE, sólo si la fila todavía no tiene token.
        Retorna False si otra petición ya asignó un token.
        """

    @abstractmethod
    async def list_unresolved_paid_tickets(self) -> List[PassRecord]:
        ...

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Descartar la transacción abierta tras un error, para seguir usando la sesión"""

    @abstractmethod
    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        ...

    @abstractmethod
    async def get_user_roles(self, user_id: str) -> List[str]:
        ...

    @abstractmethod
    async def create_ticket(
        self,
        user_id: str,
        amount: int,
        currency: str,
        stripe_session_id: Optional[str],
        status: str = "pending",
        valid_until: Optional[datetime] = None,
    ) -> PassRecord:
        """Lanza DuplicateRecordError si ya hay un ticket para stripe_session_id"""

    @abstractmethod
    async def find_ticket_by_session(self, stripe_session_id: str) -> Optional[PassRecord]:
        ...

    @abstractmethod
    async def mark_ticket_paid(
        self,
        ticket_id: str,
        amount: int,
        currency: Optional[str],
        valid_until: Optional[datetime],
        payment_intent_id: Optional[str] = None,
    ) -> PassRecord:
        ...

    @abstractmethod
    async def create_media_pass(
        self,
        user_id: str,
        stripe_session_id: str,
        pass_type: str,
        photographer_name: str,
        instagram_handle: str,
        amount: int,
        status: str = "pending",
        valid_until: Optional[datetime] = None,
    ) -> PassRecord:
        ...

    @abstractmethod
    async def find_media_pass_by_session(self, stripe_session_id: str) -> Optional[PassRecord]:
        ...

    @abstractmethod
    async def mark_media_pass_paid(self, media_pass_id: str, valid_until: Optional[datetime]) -> PassRecord:
        ...

    @abstractmethod
    async def mark_ticket_used(self, ticket_id: str, used_by: str, used_at: datetime) -> bool:
        """Marcar como usado sólo si used_at sigue en NULL"""

    @abstractmethod
    async def delete_ticket(self, ticket_id: str) -> bool:
        ...


_MODELS = {
    EntityType.TICKET: Ticket,
    EntityType.SUBSCRIPTION: Subscription,
    EntityType.MEDIA_PASS: MediaPass,
}


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def _to_record(entity_type: EntityType, row) -> PassRecord:
    return PassRecord(
        entity_type=entity_type,
        id=str(row.id),
        user_id=_str_or_none(row.user_id),
        status=row.status,
        qr_code_token=row.qr_code_token,
        qr_code_data=getattr(row, "qr_code_data", None),
        event_id=_str_or_none(getattr(row, "event_id", None)),
        amount=getattr(row, "amount", None),
        currency=getattr(row, "currency", None),
        valid_until=getattr(row, "valid_until", None),
        used_at=getattr(row, "used_at", None),
        used_by=getattr(row, "used_by", None),
        current_period_end=getattr(row, "current_period_end", None),
        pass_type=getattr(row, "pass_type", None),
        photographer_name=getattr(row, "photographer_name", None),
        instagram_handle=getattr(row, "instagram_handle", None),
        stripe_session_id=getattr(row, "stripe_session_id", None),
        created_at=row.created_at,
    )


class SqlTicketStore(TicketStore):
    """TicketStore sobre AsyncSession (Postgres de Supabase)"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_entity(self, entity_type: EntityType, entity_id: str) -> Optional[PassRecord]:
        entity_uuid = _parse_uuid(entity_id)
        if entity_uuid is None:
            return None

        model = _MODELS[entity_type]
        result = await self.db.execute(select(model).where(model.id == entity_uuid))
        row = result.scalar_one_or_none()
        return _to_record(entity_type, row) if row else None

    async def find_by_token(self, token: str) -> Optional[PassRecord]:
        for entity_type, model in _MODELS.items():
            result = await self.db.execute(select(model).where(model.qr_code_token == token))
            row = result.scalar_one_or_none()
            if row:
                return _to_record(entity_type, row)
        return None

    async def generate_token(self) -> str:
        try:
            result = await self.db.execute(select(func.generate_qr_token()))
        except Exception:
            # Una sentencia fallida aborta la transacción en Postgres
            await self.db.rollback()
            raise
        return result.scalar_one()

    async def assign_qr_token(
        self, entity_type: EntityType, entity_id: str, token: str, qr_code_data: Optional[str]
    ) -> bool:
        model = _MODELS[entity_type]
        values = {"qr_code_token": token}
        if hasattr(model, "qr_code_data"):
            values["qr_code_data"] = qr_code_data

        stmt = (
            update(model)
            .where(
                model.id == _parse_uuid(entity_id),
                or_(model.qr_code_token.is_(None), model.qr_code_token == ""),
            )
            .values(**values)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def list_unresolved_paid_tickets(self) -> List[PassRecord]:
        stmt = (
            select(Ticket)
            .where(
                Ticket.status == "paid",
                or_(Ticket.qr_code_token.is_(None), Ticket.qr_code_token == ""),
            )
            .order_by(Ticket.created_at)
        )
        result = await self.db.execute(stmt)
        return [_to_record(EntityType.TICKET, row) for row in result.scalars().all()]

    async def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        user_uuid = _parse_uuid(user_id)
        if user_uuid is None:
            return None

        try:
            result = await self.db.execute(select(Profile).where(Profile.user_id == user_uuid))
        except Exception:
            await self.db.rollback()
            raise
        profile = result.scalar_one_or_none()
        if not profile:
            return None
        return ProfileRecord(
            user_id=str(profile.user_id),
            email=profile.email,
            full_name=profile.full_name,
            approval_status=profile.approval_status,
        )

    async def rollback(self) -> None:
        await self.db.rollback()

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        result = await self.db.execute(
            select(Profile.user_id).where(func.lower(Profile.email) == email.lower().strip())
        )
        user_id = result.scalars().first()
        return _str_or_none(user_id)

    async def get_user_roles(self, user_id: str) -> List[str]:
        user_uuid = _parse_uuid(user_id)
        if user_uuid is None:
            return []

        result = await self.db.execute(select(UserRole.role).where(UserRole.user_id == user_uuid))
        return list(result.scalars().all())

    async def create_ticket(
        self,
        user_id: str,
        amount: int,
        currency: str,
        stripe_session_id: Optional[str],
        status: str = "pending",
        valid_until: Optional[datetime] = None,
    ) -> PassRecord:
        ticket = Ticket(
            user_id=_parse_uuid(user_id),
            amount=amount,
            currency=currency,
            status=status,
            stripe_session_id=stripe_session_id,
            valid_until=valid_until,
        )
        self.db.add(ticket)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if stripe_session_id and "stripe_session_id" in str(e.orig):
                raise DuplicateRecordError(stripe_session_id) from e
            raise
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(ticket)
        return _to_record(EntityType.TICKET, ticket)

    async def find_ticket_by_session(self, stripe_session_id: str) -> Optional[PassRecord]:
        result = await self.db.execute(select(Ticket).where(Ticket.stripe_session_id == stripe_session_id))
        ticket = result.scalar_one_or_none()
        return _to_record(EntityType.TICKET, ticket) if ticket else None

    async def mark_ticket_paid(
        self,
        ticket_id: str,
        amount: int,
        currency: Optional[str],
        valid_until: Optional[datetime],
        payment_intent_id: Optional[str] = None,
    ) -> PassRecord:
        result = await self.db.execute(select(Ticket).where(Ticket.id == _parse_uuid(ticket_id)))
        ticket = result.scalar_one()

        ticket.status = "paid"
        ticket.amount = amount
        if currency:
            ticket.currency = currency
        ticket.valid_until = valid_until
        if payment_intent_id:
            ticket.stripe_payment_intent_id = payment_intent_id

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(ticket)
        return _to_record(EntityType.TICKET, ticket)

    async def create_media_pass(
        self,
        user_id: str,
        stripe_session_id: str,
        pass_type: str,
        photographer_name: str,
        instagram_handle: str,
        amount: int,
        status: str = "pending",
        valid_until: Optional[datetime] = None,
    ) -> PassRecord:
        media_pass = MediaPass(
            user_id=_parse_uuid(user_id),
            stripe_session_id=stripe_session_id,
            pass_type=pass_type,
            photographer_name=photographer_name,
            instagram_handle=instagram_handle,
            amount=amount,
            status=status,
            valid_until=valid_until,
        )
        self.db.add(media_pass)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(media_pass)
        return _to_record(EntityType.MEDIA_PASS, media_pass)

    async def find_media_pass_by_session(self, stripe_session_id: str) -> Optional[PassRecord]:
        result = await self.db.execute(
            select(MediaPass)
            .where(MediaPass.stripe_session_id == stripe_session_id)
            .order_by(MediaPass.created_at)
        )
        media_pass = result.scalars().first()
        return _to_record(EntityType.MEDIA_PASS, media_pass) if media_pass else None

    async def mark_media_pass_paid(self, media_pass_id: str, valid_until: Optional[datetime]) -> PassRecord:
        result = await self.db.execute(select(MediaPass).where(MediaPass.id == _parse_uuid(media_pass_id)))
        media_pass = result.scalar_one()

        media_pass.status = "paid"
        media_pass.valid_until = valid_until

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(media_pass)
        return _to_record(EntityType.MEDIA_PASS, media_pass)

    async def mark_ticket_used(self, ticket_id: str, used_by: str, used_at: datetime) -> bool:
        stmt = (
            update(Ticket)
            .where(Ticket.id == _parse_uuid(ticket_id), Ticket.used_at.is_(None))
            .values(used_at=used_at, used_by=used_by)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def delete_ticket(self, ticket_id: str) -> bool:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return False

        try:
            result = await self.db.execute(delete(Ticket).where(Ticket.id == ticket_uuid))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result.rowcount == 1


async def rollback_after_error(store: TicketStore, context: str) -> None:
    """Dejar la sesión usable tras el fallo de un elemento de un lote"""
    try:
        await store.rollback()
    except Exception as e:
        logger.error(f"Rollback tras fallo en {context} falló: {e}")


async def get_ticket_store(db: AsyncSession = Depends(get_db)) -> TicketStore:
    """Dependency FastAPI: TicketStore ligado a la sesión del request"""
    return SqlTicketStore(db)
