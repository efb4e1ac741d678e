"""
Celery application for periodic jobs (beat + worker: `celery -A vpnpass.core.celery_app worker -B`).
The only job is the expiry sweep; it can also be triggered via POST /api/cron/expire.
"""
from celery import Celery
from celery.schedules import crontab

from vpnpass.core.config import settings

SWEEP_TASK = "vpnpass.workers.tasks.expiry.sweep_expired"


def sweep_schedule(minutes: int) -> crontab:
    """Every N minutes below an hour, otherwise every N // 60 hours on the hour."""
    if minutes < 60:
        return crontab(minute=f"*/{max(1, minutes)}")
    return crontab(minute=0, hour=f"*/{minutes // 60}")


celery_app = Celery(
    "vpnpass",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["vpnpass.workers.tasks.expiry"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # sweeps are idempotent; an overlapping or repeated run is harmless
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    broker_connection_retry_on_startup=True,
    beat_schedule={
        "sweep-expired-credentials": {
            "task": SWEEP_TASK,
            "schedule": sweep_schedule(settings.expiry_sweep_minutes),
        },
    },
)
