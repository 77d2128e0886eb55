from celery import Celery
from dealflow.config import get_settings

settings = get_settings()

celery_app = Celery(
    "dealflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["dealflow.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # a full batch of slow research calls
    task_soft_time_limit=1740,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "dealflow.workers.tasks.process_research_jobs": {"queue": "research"},
    },
    beat_schedule={
        "process-research-jobs": {
            "task": "dealflow.workers.tasks.process_research_jobs",
            "schedule": float(settings.research_schedule_interval_seconds),
            "kwargs": {"max_jobs": settings.research_schedule_max_jobs},
        },
    },
)
