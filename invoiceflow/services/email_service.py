"""
InvoiceFlow - Email Service

Delivers workflow notification mail over SMTP. The "mock" provider keeps
messages in `outbox` instead, which is what development and tests use.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from invoiceflow.config import settings

logger = logging.getLogger(__name__)


class EmailProvider:
    SMTP = "smtp"
    MOCK = "mock"


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    cc: Optional[List[str]] = None
    reply_to: Optional[str] = None

    @property
    def recipients(self) -> List[str]:
        return self.to + (self.cc or [])


class EmailService:
    """Send notification mail through the configured provider."""

    def __init__(self, provider: Optional[str] = None):
        self.provider = (provider or settings.email_provider).lower()
        self.sender = f"{settings.mail_from_name} <{settings.email_from}>"
        self.outbox: List[EmailMessage] = []

    async def send_email(self, message: EmailMessage) -> bool:
        """
        Deliver one message.

        Returns False when the SMTP server refused it or could not be
        reached; the caller decides whether that is an error.
        """
        if self.provider != EmailProvider.SMTP:
            self.outbox.append(message)
            logger.info(f"[MOCK EMAIL] To: {message.to} | Subject: {message.subject}")
            return True

        try:
            await asyncio.to_thread(self._deliver_smtp, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery of '{message.subject}' to {message.to} failed: {e}")
            return False

        logger.info(f"Email '{message.subject}' sent to {message.to}")
        return True

    def _build_mime(self, message: EmailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = self.sender
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            mime["Reply-To"] = message.reply_to

        mime.attach(MIMEText(message.body_text, "plain"))
        if message.body_html:
            mime.attach(MIMEText(message.body_html, "html"))
        return mime

    def _deliver_smtp(self, message: EmailMessage) -> None:
        # Blocking; runs in a worker thread
        mime = self._build_mime(message)
        with smtplib.SMTP(settings.mail_server, settings.mail_port, timeout=30) as server:
            if settings.mail_use_tls:
                server.starttls(context=ssl.create_default_context())
            if settings.mail_username and settings.mail_password:
                server.login(settings.mail_username, settings.mail_password)
            server.sendmail(settings.email_from, message.recipients, mime.as_string())
