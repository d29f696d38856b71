"""Alert delivery for reconciliation outcomes."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, List, Optional, Sequence

from watchsync.core.config import Settings, get_settings
from watchsync.core.enums import AlertSeverity

logger = logging.getLogger(__name__)


class AlertSink(ABC):
    """Fire-and-forget notification target used by the reconciliation engine."""

    @abstractmethod
    async def alert(self, severity: AlertSeverity, title: str, detail: str = "") -> None:
        pass


class EmailNotificationService:
    """Lightweight SMTP helper for system notifications."""

    def __init__(self, settings: Settings):
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send_alert(
        self,
        *,
        severity: AlertSeverity,
        title: str,
        detail: str = "",
        recipients: Optional[Sequence[str]] = None,
    ) -> bool:
        """Send an alert email.

        Args:
            severity: Severity shown in the subject line.
            title: Short summary, used as the subject.
            detail: Body text; SKU lists and raw upstream errors go here.
            recipients: Override the default notification list.
        """

        if not self.ready():
            logger.warning("SMTP configuration incomplete; alert email skipped: %s", title)
            return False

        to_addresses = self._resolve_recipients(recipients)
        if not to_addresses:
            logger.warning("No recipients configured for alert; skipping email")
            return False

        subject = f"[{severity.value.upper()}] {title}"
        lines: List[str] = [title, ""]
        if detail:
            lines.append(detail)
        lines.append("\nSent automatically by the listing sync")

        message = self._build_message(subject, to_addresses, "\n".join(lines))
        return await self._dispatch(message)

    def ready(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve_recipients(self, override: Optional[Sequence[str]]) -> List[str]:
        recipients: Iterable[str] = override if override else self._settings.NOTIFICATION_EMAILS
        return [email.strip() for email in recipients if email]

    def _build_message(
        self,
        subject: str,
        to_addresses: Sequence[str],
        body_text: str,
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(sorted(set(to_addresses)))
        message.set_content(body_text)
        return message

    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Listing Sync Alerts"
        return formataddr((from_name, from_email))

    async def _dispatch(self, message: EmailMessage) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, message)
            logger.info("Alert email sent to %s", message["To"])
            return True
        except Exception as exc:
            logger.error("Failed to send alert email: %s", exc, exc_info=True)
            return False

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)
        timeout = settings.SMTP_TIMEOUT

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except Exception:
                smtp.close()


class AlertDispatcher(AlertSink):
    """
    Logs every alert and emails the ones at or above `email_threshold`.

    Never raises: a broken mail server must not stop a sync cycle.
    """

    _LEVELS = {
        AlertSeverity.INFO: logging.INFO,
        AlertSeverity.WARNING: logging.WARNING,
        AlertSeverity.ERROR: logging.ERROR,
    }
    _ORDER = [AlertSeverity.INFO, AlertSeverity.WARNING, AlertSeverity.ERROR]

    def __init__(
        self,
        email_service: Optional[EmailNotificationService] = None,
        email_threshold: AlertSeverity = AlertSeverity.WARNING,
    ):
        self._email_service = email_service
        self._email_threshold = email_threshold

    async def alert(self, severity: AlertSeverity, title: str, detail: str = "") -> None:
        logger.log(self._LEVELS[severity], "%s%s", title, f" | {detail}" if detail else "")
        if self._email_service is None:
            return
        if self._ORDER.index(severity) < self._ORDER.index(self._email_threshold):
            return
        try:
            await self._email_service.send_alert(severity=severity, title=title, detail=detail)
        except Exception as exc:
            logger.error("Alert delivery failed for %r: %s", title, exc)


def get_alert_dispatcher(settings: Optional[Settings] = None) -> AlertDispatcher:
    """Factory for dependency injection."""

    settings = settings or get_settings()
    return AlertDispatcher(EmailNotificationService(settings))
