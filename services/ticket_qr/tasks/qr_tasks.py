"""Tareas Celery de mantenimiento de códigos QR"""
import asyncio
import logging

from shared.cache.celery_app import celery_app
from shared.cache.redis_client import DistributedLock, LockNotAcquired, close_redis
from shared.database import connection
from shared.database.store import SqlTicketStore
from services.ticket_qr.services.backfill_service import QRBackfillService

logger = logging.getLogger(__name__)

BACKFILL_LOCK_KEY = "qr-backfill"


def run_async(coro):
    """Helper para ejecutar coroutines en contexto síncrono de Celery"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def run_backfill() -> dict:
    """
    Ejecutar el barrido con lock distribuido: dos workers nunca barren a la vez.
    """
    await connection.init_db()
    try:
        async with DistributedLock(BACKFILL_LOCK_KEY, timeout=0, expire=9 * 60):
            async with connection.async_session_maker() as session:
                result = await QRBackfillService(SqlTicketStore(session)).run()
                return result.to_response()
    except LockNotAcquired:
        logger.info("[CELERY] Barrido de QR ya en curso en otro worker, omitiendo")
        return {"success": True, "skipped": True, "fixed_count": 0}
    finally:
        await connection.close_db()
        await close_redis()


@celery_app.task(name="fix_missing_qr_codes")
def fix_missing_qr_codes_task():
    """Tarea periódica (Celery beat) que corrige tickets pagados sin QR"""
    result = run_async(run_backfill())
    if result.get("success"):
        logger.info(f"[CELERY] Barrido de QR completado: {result.get('fixed_count', 0)} corregidos")
    else:
        logger.error(f"[CELERY] Barrido de QR falló: {result.get('error')}")
    return result
