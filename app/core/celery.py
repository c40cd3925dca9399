"""
Celery configuration for background tasks
"""
from celery import Celery
from celery.schedules import crontab
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_url = settings.redis_url

# Create Celery instance
celery_app = Celery(
    "erp_lite",
    broker=redis_url,
    backend=redis_url,
    include=[
        "app.modules.quotations.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Paris",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,  # 1 hour

    task_routes={
        "app.modules.quotations.tasks.*": {"queue": "quotations"},
    },

    # Beat schedule for periodic tasks
    beat_schedule={
        "expire-quotations": {
            "task": "app.modules.quotations.tasks.expire_quotations_task",
            "schedule": crontab(hour=0, minute=15),  # Diario, después de medianoche
        },
    }
)

if __name__ == "__main__":
    celery_app.start()
