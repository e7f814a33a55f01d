"""SMTP email sender for the ``email`` action."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import time
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

from pydantic import BaseModel

from .config import EmailConfig

logger = logging.getLogger(__name__)


class EmailResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class SmtpEmailSender:
    """Send mail through the configured SMTP server.

    Without credentials, messages are logged instead of sent. ``send`` never
    raises: delivery problems come back as ``EmailResult(success=False)``.
    """

    def __init__(self, config: Optional[EmailConfig] = None, timeout: float = 30.0) -> None:
        self._config = config or EmailConfig()
        self._timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self._config.secure:
            return smtplib.SMTP_SSL(self._config.host, self._config.port, timeout=self._timeout)
        smtp = smtplib.SMTP(self._config.host, self._config.port, timeout=self._timeout)
        smtp.starttls()
        return smtp

    def _deliver(self, message: EmailMessage) -> None:
        with self._connect() as smtp:
            smtp.login(self._config.user, self._config.password)
            smtp.send_message(message)

    async def send(
        self, to: str, subject: str, body: str, html: Optional[str] = None
    ) -> EmailResult:
        if not self._config.configured:
            logger.info(
                f"Email to {to} not sent (SMTP not configured): {subject!r} {body[:100]!r}"
            )
            return EmailResult(success=True, message_id=f"mock-{int(time.time() * 1000)}")

        message = EmailMessage()
        message["From"] = self._config.sender or self._config.user
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(body)
        if html:
            message.add_alternative(html, subtype="html")

        logger.info(f"Sending email to {to}: {subject!r}")
        try:
            await asyncio.to_thread(self._deliver, message)
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return EmailResult(success=False, error=str(e) or type(e).__name__)

        logger.info(f"Email sent to {to} ({message['Message-ID']})")
        return EmailResult(success=True, message_id=message["Message-ID"])

    async def verify(self) -> bool:
        """Check that the SMTP server accepts our credentials."""
        if not self._config.configured:
            logger.warning("SMTP credentials not configured")
            return False

        def _login() -> None:
            with self._connect() as smtp:
                smtp.login(self._config.user, self._config.password)

        try:
            await asyncio.to_thread(_login)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP connection verification failed: {e}")
            return False
        logger.info("SMTP connection verified")
        return True
