"""
Configuración de Celery para tareas de mantenimiento
"""
from celery import Celery
from kombu import Queue, Exchange
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "skateburn",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "services.ticket_qr.tasks.qr_tasks",
    ]
)

default_exchange = Exchange("default", type="direct")

celery_app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
    # Cola de baja prioridad para barridos de mantenimiento
    Queue("low_priority", default_exchange, routing_key="low"),
)

celery_app.conf.task_routes = {
    "fix_missing_qr_codes": {"queue": "low_priority"},
}

celery_app.conf.beat_schedule = {
    "fix-missing-qr-codes": {
        "task": "fix_missing_qr_codes",
        "schedule": settings.QR_BACKFILL_INTERVAL_MINUTES * 60.0,
    },
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    # ACK late: confirmar tarea solo cuando termina
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",
)

logger.info(
    "Celery configurado - Broker: %s, barrido QR cada %d min",
    settings.REDIS_URL.split("@")[-1],
    settings.QR_BACKFILL_INTERVAL_MINUTES,
)
