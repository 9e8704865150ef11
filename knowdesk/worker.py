"""Celery worker configuration."""

from celery import Celery

from knowdesk.settings import settings

celery_app = Celery(
    "worker",
    broker=str(settings.REDIS_URL),
    backend=str(settings.REDIS_URL),
    include=["knowdesk.services.tasks"],
)


celery_app.conf.update(
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "recover-documents": {
            "task": "recover_documents",
            "schedule": float(settings.SWEEP_INTERVAL_SECONDS),
        },
    },
)
