"""
Email Service
=============
Transactional email over SMTP:
- Password reset links
- Welcome email after registration
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from config import Settings, settings
from exceptions import EmailDeliveryError
from logging_config import get_logger

logger = get_logger(__name__)


class EmailService:
    """Async SMTP email service"""

    def __init__(self, config: Settings = settings):
        self.smtp_host = config.SMTP_HOST
        self.smtp_port = config.SMTP_PORT
        self.smtp_user = config.EMAIL_USER
        self.smtp_password = config.EMAIL_PASSWORD
        self.from_name = config.EMAIL_FROM_NAME
        self.reset_minutes = config.PASSWORD_RESET_EXPIRE_MINUTES

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    async def send_email(self, to_email: str, subject: str, html_content: str,
                         text_content: Optional[str] = None) -> None:
        """Send one email; raises EmailDeliveryError on any failure"""
        if not self.is_configured:
            logger.warning("[Email] EMAIL_USER / EMAIL_PASSWORD not set, cannot send email")
            raise EmailDeliveryError("Email service is not configured")

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.smtp_user}>"
        message["To"] = to_email
        message["Subject"] = subject
        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True,
            )
        except aiosmtplib.SMTPException as e:
            logger.error(f"[Email] Failed to send '{subject}' to {to_email}: {e}")
            raise EmailDeliveryError("Could not send email") from e
        except OSError as e:
            logger.error(f"[Email] SMTP connection to {self.smtp_host}:{self.smtp_port} failed: {e}")
            raise EmailDeliveryError("Could not send email") from e

        logger.info(f"[Email] Sent '{subject}' to {to_email}")

    async def send_password_reset_email(self, to_email: str, reset_url: str) -> None:
        html = f"""
      <h1>Reset Your Password</h1>
      <p>You requested a password reset. Please click the link below to reset your password:</p>
      <a href="{reset_url}" style="padding: 10px 15px; background-color: #4CAF50; color: white; text-decoration: none; border-radius: 5px;">Reset Password</a>
      <p>This link is valid for {self.reset_minutes} minutes only.</p>
      <p>If you didn't request a password reset, please ignore this email or contact support if you have concerns.</p>
    """
        text = f"Reset your password: {reset_url}\nThis link is valid for {self.reset_minutes} minutes only."
        await self.send_email(to_email, "Password Reset Request", html, text)

    async def send_welcome_email(self, to_email: str, name: str) -> None:
        html = f"""
      <h1>Welcome to Homie-Do, {name}!</h1>
      <p>Thank you for joining us. We're excited to have you on board!</p>
      <p>If you have any questions or need assistance, feel free to contact our support team.</p>
    """
        await self.send_email(to_email, "Welcome to Homie-Do!", html)


def get_email_service() -> EmailService:
    return EmailService(settings)
