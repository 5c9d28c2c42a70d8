from celery import Celery

from seatlock.config import settings

celery_app = Celery(
    "seatlock_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["seatlock.notifications.tasks", "seatlock.sweeps.tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    timezone="UTC",
    enable_utc=True,
    # emails and sweeps are independent; a slow SMTP server must not delay reclaiming seats
    task_routes={
        "seatlock.notifications.tasks.*": {"queue": "notifications"},
        "seatlock.sweeps.tasks.*": {"queue": "sweeps"},
    },
    beat_schedule={
        "sweep-expired-holds": {
            "task": "seatlock.sweeps.tasks.sweep_expired_holds_task",
            "schedule": float(settings.SWEEP_INTERVAL_SECONDS),
        },
    },
)
