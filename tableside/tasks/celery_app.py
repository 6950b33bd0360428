"""
Tableside Orders — Celery application

Uses Redis as both broker and result backend.
Workers run in a separate container (ticket-worker).
"""
from celery import Celery
from tableside.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "tableside",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["tableside.tasks.ticket_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,           # Only ack after the ticket reached the printer bridge
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
)
