from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from pathlib import Path
from typing import Dict, Optional
from seatlock.services.notification_providers import LogProvider, NotificationProvider
from prometheus_client import Counter
import logging

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "notifications" / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

# metrics
NOTIF_COUNTER_SENT = Counter("seatlock_notifications_sent_total", "Total notifications sent", ["channel", "provider"])
NOTIF_COUNTER_FAILED = Counter("seatlock_notifications_failed_total", "Total notification failures", ["channel", "provider"])
NOTIF_COUNTER_RETRIED = Counter("seatlock_notifications_retried_total", "Total notification retries", ["channel", "provider"])


class NotificationService:
    def __init__(self, provider: Optional[NotificationProvider] = None):
        self.provider = provider or LogProvider()

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def render(self, template_name: str, locale: str = "en", context: Optional[Dict] = None) -> str:
        ctx = context or {}
        # try locale-specific template, fallback to en
        for tpl in (f"{locale}/{template_name}", f"en/{template_name}"):
            try:
                return _env.get_template(tpl).render(**ctx)
            except TemplateNotFound:
                continue
        raise RuntimeError("Template not found: %s" % template_name)

    async def send_email(self, to: str, subject: str, template_name: str, context: Optional[Dict] = None, locale: str = "en", meta: Optional[Dict] = None):
        body = self.render(template_name, locale=locale, context=context)
        try:
            res = await self.provider.send_email(to=to, subject=subject, body=body, meta=meta)
        except Exception:
            NOTIF_COUNTER_FAILED.labels(channel="email", provider=self.provider_name).inc()
            logger.exception("Email send failed")
            raise
        NOTIF_COUNTER_SENT.labels(channel="email", provider=self.provider_name).inc()
        return res


notification_service = NotificationService()
