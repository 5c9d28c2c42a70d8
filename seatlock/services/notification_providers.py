import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, Optional

from seatlock.config import settings

logger = logging.getLogger(__name__)


class NotificationProvider(ABC):
    """Delivers a rendered booking email."""

    name = "base"

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class LogProvider(NotificationProvider):
    """Writes the email to the log instead of sending it (dev/testing)."""

    name = "log"

    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        logger.info("Email to %s: %s", to, subject)
        logger.debug("Email body: %s", body)
        return {"status": "sent", "provider": self.name}


class SmtpProvider(NotificationProvider):
    name = "smtp"

    def __init__(self, host: str = None, port: int = None, username: str = None, password: str = None, sender: str = None):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.sender = sender or settings.NOTIFICATION_FROM

    def _message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.username:
                smtp.starttls()
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._deliver, self._message(to, subject, body))
        return {"status": "sent", "provider": self.name}


PROVIDERS = {
    LogProvider.name: LogProvider,
    SmtpProvider.name: SmtpProvider,
}


def get_provider(name: str) -> NotificationProvider:
    try:
        return PROVIDERS[name]()
    except KeyError:
        raise ValueError("Unknown notification provider: %s" % name)
