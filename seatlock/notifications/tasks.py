import asyncio
import json

import redis
from celery.utils.log import get_task_logger

from seatlock.celery_app import celery_app
from seatlock.config import settings
from seatlock.services.notification_providers import get_provider
from seatlock.services.notification_service import NotificationService, NOTIF_COUNTER_RETRIED

logger = get_task_logger(__name__)

DLQ_KEY = "notification_dlq"
BOOKING_CONFIRMATION_TEMPLATE = "booking_confirmation.txt"
BOOKING_CONFIRMATION_SUBJECT = "Your bus seats are confirmed"


def _dead_letter(payload: dict) -> None:
    client = redis.Redis.from_url(settings.REDIS_URL)
    try:
        client.rpush(DLQ_KEY, json.dumps(payload))
    finally:
        client.close()


@celery_app.task(bind=True, max_retries=3)
def send_notification_task(self, to: str, template_name: str, context: dict = None, locale: str = "en", provider_name: str = None):
    """Render and send an email; retries with backoff, then parks the message in the Redis DLQ."""
    context = context or {}
    provider_name = provider_name or settings.NOTIFICATION_PROVIDER

    async def _do():
        svc = NotificationService(get_provider(provider_name))
        return await svc.send_email(to=to, subject=context.get("subject", ""), template_name=template_name, context=context, locale=locale)

    try:
        return asyncio.run(_do())
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            logger.error("Max retries exceeded for notification to %s; sending to DLQ", to)
            _dead_letter({"to": to, "template": template_name, "context": context, "locale": locale})
            raise
        NOTIF_COUNTER_RETRIED.labels(channel="email", provider=provider_name).inc()
        logger.warning("Error sending notification to %s: %s", to, exc)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)


def booking_confirmation_context(booking, trip) -> dict:
    return {
        "subject": BOOKING_CONFIRMATION_SUBJECT,
        "reference": booking.reference,
        "route": trip.route,
        "departure_time": trip.departure_time.isoformat() if trip.departure_time else None,
        "seats": list(booking.seat_ids),
        "total_amount": str(booking.total_amount),
    }


def enqueue_booking_confirmation(booking, trip, email: str):
    return send_notification_task.delay(
        to=email,
        template_name=BOOKING_CONFIRMATION_TEMPLATE,
        context=booking_confirmation_context(booking, trip),
    )
