"""E-mail notification dispatcher backed by SMTP."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any
from uuid import UUID

import aiosmtplib

from app.core.config import Settings
from app.core.enums import EmailTypeEnum, NotificationStatusEnum
from app.core.metrics import record_email_delivery
from app.modules.notifications.models import Notification
from app.modules.notifications.repository import NotificationsRepository
from app.modules.notifications.templates import render_email
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

SmtpSender = Callable[..., Awaitable[Any]]


class EmailDispatcher:
    """Render, persist and deliver templated e-mails."""

    def __init__(
        self,
        repository: NotificationsRepository,
        settings: Settings,
        *,
        sender: SmtpSender = aiosmtplib.send,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.sender = sender
        self.now_provider = now_provider

    async def send_email(
        self,
        *,
        to: str,
        email_type: EmailTypeEnum,
        data: dict[str, Any],
        user_id: UUID,
    ) -> Notification:
        """Send one e-mail; the returned notification records whether it went out."""
        subject, html = render_email(email_type, data)
        notification = await self.repository.create_notification(
            user_id=user_id,
            email_type=email_type,
            recipient=to,
            title=subject,
            body=html,
        )

        if not self.settings.smtp_configured:
            logger.warning("SMTP not configured, skipping %s e-mail to %s", email_type, to)
            return await self._mark_failed(notification, "SMTP is not configured")

        message = self._build_message(to, subject, html)
        try:
            await self.sender(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username,
                password=self.settings.smtp_password,
                start_tls=self.settings.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send %s e-mail to %s: %s", email_type, to, exc)
            return await self._mark_failed(notification, str(exc))

        await self.repository.set_status(notification, NotificationStatusEnum.SENT, self.now_provider())
        record_email_delivery(str(email_type), str(NotificationStatusEnum.SENT))
        logger.info("Sent %s e-mail to %s", email_type, to)
        return notification

    async def _mark_failed(self, notification: Notification, error_message: str) -> Notification:
        record_email_delivery(str(notification.email_type), str(NotificationStatusEnum.FAILED))
        return await self.repository.set_status(
            notification,
            NotificationStatusEnum.FAILED,
            None,
            error_message=error_message,
        )

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.settings.email_from_name, self.settings.email_from_address))
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable e-mail client.")
        message.add_alternative(html, subtype="html")
        return message
