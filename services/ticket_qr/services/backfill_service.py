"""Barrido de mantenimiento: tickets pagados sin código QR"""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from shared.database.store import TicketStore, rollback_after_error
from shared.utils.exceptions import AppError
from services.ticket_qr.services.issuance_service import QRIssuanceService

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    success: bool
    fixed_count: int = 0
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_response(self) -> dict:
        if not self.success:
            return {"success": False, "fixed_count": 0, "error": self.error}

        message = f"Fixed {self.fixed_count} tickets" if self.fixed_count else "No tickets need QR code fixes"
        response = {"success": True, "message": message, "fixed_count": self.fixed_count}
        if self.errors:
            response["errors"] = self.errors
        return response


class QRBackfillService:
    """
    Emite QR para cada ticket con status 'paid' y token nulo o vacío.

    Procesa en serie; el fallo de un ticket se registra y no detiene el resto.
    Re-ejecutarlo es seguro: los tickets ya corregidos no vuelven a aparecer.
    """

    def __init__(self, store: TicketStore, issuance: Optional[QRIssuanceService] = None):
        self.store = store
        self.issuance = issuance or QRIssuanceService(store)

    async def run(self) -> BackfillResult:
        logger.info("Iniciando corrección de QR faltantes...")

        try:
            tickets = await self.store.list_unresolved_paid_tickets()
        except Exception as e:
            logger.error(f"No se pudieron obtener tickets sin QR: {e}")
            return BackfillResult(success=False, error=f"Failed to fetch tickets: {e}")

        logger.info(f"Encontrados {len(tickets)} tickets sin QR")

        result = BackfillResult(success=True)
        for ticket in tickets:
            try:
                issued = await self.issuance.issue(ticket)
            except AppError as e:
                logger.warning(f"Ticket {ticket.id}: {e.message}")
                result.errors.append(f"{ticket.id}: {e.message}")
                await rollback_after_error(self.store, f"ticket {ticket.id}")
                continue
            except Exception as e:
                logger.exception(f"Error inesperado procesando ticket {ticket.id}")
                result.errors.append(f"{ticket.id}: {e}")
                await rollback_after_error(self.store, f"ticket {ticket.id}")
                continue

            if issued.created:
                result.fixed_count += 1

        logger.info(f"Corrección de QR terminada. Corregidos: {result.fixed_count}, errores: {len(result.errors)}")
        return result
