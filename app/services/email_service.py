"""
SMTP email service for account verification.
"""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional
from urllib.parse import urlencode

import structlog

from app.core.config import settings

logger = structlog.get_logger()


class EmailDeliveryError(RuntimeError):
    pass


class EmailService:
    def __init__(self) -> None:
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.smtp_from = settings.SMTP_FROM
        self.smtp_use_tls = settings.SMTP_USE_TLS
        self.smtp_use_ssl = settings.SMTP_USE_SSL
        self.smtp_timeout = settings.SMTP_TIMEOUT_SECONDS
        self.max_retries = max(1, settings.SMTP_MAX_RETRIES)

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.smtp_from)

    def _build_connection(self):
        if self.smtp_use_ssl:
            return smtplib.SMTP_SSL(
                host=self.smtp_host,
                port=self.smtp_port,
                timeout=self.smtp_timeout,
                context=ssl.create_default_context(),
            )

        smtp = smtplib.SMTP(host=self.smtp_host, port=self.smtp_port, timeout=self.smtp_timeout)
        if self.smtp_use_tls:
            smtp.starttls(context=ssl.create_default_context())
        return smtp

    def send_email(self, *, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        if not self.is_configured():
            raise EmailDeliveryError("SMTP is not configured. Set SMTP_* environment variables.")

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.smtp_from
        message["To"] = to_email
        message.set_content(text_body)

        if html_body:
            message.add_alternative(html_body, subtype="html")

        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                with self._build_connection() as smtp:
                    if self.smtp_user and self.smtp_password:
                        smtp.login(self.smtp_user, self.smtp_password)
                    smtp.send_message(message)

                logger.info("Email sent", to=to_email, subject=subject, attempt=attempt)
                return
            except (smtplib.SMTPException, OSError) as exc:
                last_error = exc
                logger.warning(
                    "Email send attempt failed",
                    to=to_email,
                    subject=subject,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(exc),
                )

        raise EmailDeliveryError(f"Failed to send email after {self.max_retries} attempts: {last_error}")

    @staticmethod
    def verification_url(token: str) -> str:
        return f"{settings.APP_BASE_URL.rstrip('/')}/verify-email?{urlencode({'token': token})}"

    def send_verification_email(self, *, to_email: str, token: str, name: Optional[str] = None) -> None:
        verification_url = self.verification_url(token)

        if not self.is_configured() and settings.ENVIRONMENT == "development":
            logger.info("SMTP not configured, verification link not sent", to=to_email, verification_url=verification_url)
            return

        greeting = f"Hi {name}," if name else "Hi,"
        subject = "Verify your email address"
        text_body = (
            f"{greeting}\n\n"
            "Please confirm your email address to finish setting up your account:\n"
            f"{verification_url}\n\n"
            f"This link expires in {settings.VERIFICATION_TOKEN_TTL_HOURS} hours. "
            "If you did not create an account, you can ignore this message."
        )
        html_body = (
            f"<p>{greeting}</p>"
            "<p>Please confirm your email address to finish setting up your account:</p>"
            f'<p><a href="{verification_url}">Verify email</a></p>'
            f"<p>This link expires in {settings.VERIFICATION_TOKEN_TTL_HOURS} hours.</p>"
        )

        self.send_email(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)


email_service = EmailService()
