from celery import Celery
from app.config import settings

# Broker and backend come from settings so workers honour the environment
celery_app = Celery(
    "linkbio",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "app.tasks.*": {"queue": "celery"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Server-side re-verification of pending custom domains
celery_app.conf.beat_schedule = {
    "recheck-custom-domains": {
        "task": "app.tasks.domain_tasks.recheck_domains",
        "schedule": float(settings.DOMAIN_SCHEDULER_TICK_SECONDS),
        "options": {"expires": float(settings.DOMAIN_SCHEDULER_TICK_SECONDS)},
    },
}

# Auto-discover tasks so that @celery_app.task decorators in app/tasks/ get registered
celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.domain_tasks  # noqa: F401, E402
