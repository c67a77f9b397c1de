"""Servicio para gestión de tickets (admin)"""
from typing import Dict
import logging

from shared.database.store import TicketStore
from shared.utils.exceptions import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class TicketsAdminService:
    """Operaciones de tickets reservadas a administradores"""

    def __init__(self, store: TicketStore):
        self.store = store

    async def delete_ticket(self, ticket_id: str, admin_id: str) -> Dict:
        """
        Eliminar un ticket por id

        Raises:
            NotFoundError: si el ticket no existe
            PersistenceError: si la base de datos rechaza el borrado
        """
        try:
            deleted = await self.store.delete_ticket(ticket_id)
        except Exception as e:
            logger.error(f"Error eliminando ticket {ticket_id}: {e}")
            raise PersistenceError(f"Failed to delete ticket: {e}") from e

        if not deleted:
            raise NotFoundError("Ticket not found")

        logger.info(f"Ticket {ticket_id} eliminado por admin {admin_id}")
        return {
            "success": True,
            "message": "Ticket deleted successfully",
            "ticketId": ticket_id,
        }
