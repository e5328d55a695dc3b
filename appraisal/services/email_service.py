"""
Outbound email.
The backend is a seam: LogEmailBackend writes messages to the log (the default
when no relay is configured), HttpEmailBackend posts them to a mail relay API.
Delivery errors surface as DependencyFailure.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from appraisal.core.config import settings
from appraisal.core.exceptions import DependencyFailure
from appraisal.core.formatting import humanize

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str


class LogEmailBackend:
    def send(self, message: EmailMessage) -> None:
        logger.info(f"Email to {message.to}: {message.subject}")


class HttpEmailBackend:
    def __init__(self, api_url: str, api_key: str, timeout: int):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    @retry(
        stop=stop_after_attempt(settings.email.max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(requests.exceptions.RequestException),
        reraise=True
    )
    def _post(self, payload: dict) -> None:
        response = requests.post(
            self.api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()

    def send(self, message: EmailMessage) -> None:
        payload = {
            "from": {"email": settings.email.from_email, "name": settings.email.from_name},
            "to": message.to,
            "subject": message.subject,
            "text": message.body,
        }
        try:
            self._post(payload)
        except requests.exceptions.RequestException as e:
            raise EmailDeliveryError(str(e)) from e


def _default_backend():
    if settings.email.api_url:
        return HttpEmailBackend(settings.email.api_url, settings.email.api_key, settings.email.timeout_seconds)
    return LogEmailBackend()


_backend = _default_backend()


def get_email_backend():
    return _backend


def set_email_backend(backend) -> None:
    """Swap the delivery backend (tests, alternative relays)."""
    global _backend
    _backend = backend


class EmailService:
    def __init__(self, backend=None):
        self.backend = backend or get_email_backend()

    def send(self, to: Optional[str], subject: str, body: str) -> None:
        if not to:
            raise DependencyFailure("email", "Recipient has no email address")
        try:
            self.backend.send(EmailMessage(to=to, subject=subject, body=body))
        except Exception as e:
            logger.error(f"Email delivery to {to} failed: {e}")
            raise DependencyFailure("email", f"Email delivery failed: {e}") from e

    def send_initiation(self, employee, initiated_appraisal, due_date=None) -> None:
        due = f" Please complete it by {due_date:%d %b %Y}." if due_date else ""
        self.send(
            employee.email,
            "Your performance appraisal has started",
            f"Hello {employee.full_name},\n\n"
            f"A {humanize(initiated_appraisal.appraisal_type.value)} appraisal has been initiated for you.{due}\n",
        )

    def send_reminder(self, employee, initiated_appraisal, due_date=None) -> None:
        due = f" It is due on {due_date:%d %b %Y}." if due_date else ""
        self.send(
            employee.email,
            "Reminder: your performance appraisal is pending",
            f"Hello {employee.full_name},\n\n"
            f"Your {humanize(initiated_appraisal.appraisal_type.value)} appraisal is still pending.{due}\n",
        )

