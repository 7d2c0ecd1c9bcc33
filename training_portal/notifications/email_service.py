"""
Outgoing email over SMTP (aiosmtplib)
Only password reset links go out for now.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from training_portal.config import (
    EMAIL_FROM,
    FRONTEND_URL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USER,
)

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(self):
        self.smtp_host = SMTP_HOST
        self.smtp_port = SMTP_PORT
        self.smtp_user = SMTP_USER
        self.smtp_password = SMTP_PASSWORD
        self.from_email = EMAIL_FROM
        self.frontend_url = FRONTEND_URL

    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_content: str,
        html_content: Optional[str] = None,
    ) -> bool:
        """Returns True once the SMTP server accepted the message."""
        message = MIMEMultipart("alternative")
        message["From"] = self.from_email
        message["To"] = to_email
        message["Subject"] = subject
        message.attach(MIMEText(text_content, "plain"))
        if html_content:
            message.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=SMTP_USE_TLS,
            )
        except aiosmtplib.SMTPException as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False

        logger.info("Sent email to %s: %s", to_email, subject)
        return True

    async def send_password_reset(self, to_email: str, reset_token: str) -> bool:
        reset_url = f"{self.frontend_url}/reset-password?token={reset_token}"
        return await self.send_email(
            to_email,
            "Password Reset Request",
            f"Click the following link to reset your password: {reset_url}",
            f'<p>Click the following link to reset your password:</p>'
            f'<p><a href="{reset_url}">{reset_url}</a></p>',
        )


def get_email_service() -> EmailService:
    return EmailService()
