"""
Celery application for background alert delivery and scheduled learning.

Notifications are sent off the rule evaluation path; household locations are
recalculated once a day from watch history.
"""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from app.core.config import settings


celery_app = Celery(
    "streamwatch_sentinel",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.notifications",
        "app.tasks.households",
    ]
)


celery_app.conf.update(
    # Serialization (JSON only)
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Notifications are best-effort: acknowledge on receipt, never retry
    task_acks_late=False,
    task_track_started=True,

    task_time_limit=120,
    task_soft_time_limit=100,

    task_annotations={
        "app.tasks.households.recalculate_household_locations": {
            "time_limit": 1800,  # Full history scan
            "soft_time_limit": 1700,
        },
    },

    result_expires=3600,

    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    task_queues=(
        Queue("default", routing_key="task.#"),
        Queue("alerts", routing_key="alerts.#"),
    ),
    task_default_queue="default",
    task_default_exchange="tasks",
    task_default_exchange_type="topic",
    task_default_routing_key="task.default",
)


celery_app.conf.beat_schedule = {
    # Re-learn household locations daily at 4 AM UTC
    "recalculate-household-locations": {
        "task": "app.tasks.households.recalculate_household_locations",
        "schedule": crontab(hour="4", minute="0"),
        "options": {"queue": "default"},
    },
}


# Alerts get their own queue so a slow history scan never delays them
celery_app.conf.task_routes = {
    "app.tasks.notifications.send_violation_notifications": {"queue": "alerts"},
}


celery_app.conf.worker_hijack_root_logger = False
celery_app.conf.worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
celery_app.conf.worker_task_log_format = (
    "[%(asctime)s: %(levelname)s/%(processName)s] "
    "[%(task_name)s(%(task_id)s)] %(message)s"
)


if __name__ == "__main__":
    celery_app.start()
