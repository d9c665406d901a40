"""
Celery application configuration

This module configures Celery for out-of-band capital call maintenance.
"""
from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "capital_calls",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=['app.tasks']
)

# Configure Celery
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes max
    task_soft_time_limit=8 * 60,  # 8 minutes soft limit
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

celery_app.conf.task_routes = {
    'app.tasks.recalculate_portfolio_weights_task': {'queue': 'capital_calls'},
    'app.tasks.mark_overdue_capital_calls_task': {'queue': 'capital_calls'},
}

# Daily overdue sweep shortly after midnight UTC
celery_app.conf.beat_schedule = {
    'mark-overdue-capital-calls': {
        'task': 'app.tasks.mark_overdue_capital_calls_task',
        'schedule': crontab(hour=0, minute=15),
    },
}
