"""
SMTP Email Service

Delivers rendered messages over SMTP with aiosmtplib. Used by the
transactional email service when ``EMAIL_PROVIDER=smtp``.
"""

import os
import logging
from typing import Optional, Dict, Any, List
import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid

logger = logging.getLogger(__name__)


class EmailServiceConfig:
    """SMTP configuration from environment variables."""

    def __init__(self):
        self.smtp_host = os.getenv('SMTP_HOST', '')
        self.smtp_port = int(os.getenv('SMTP_PORT', '587'))
        self.smtp_username = os.getenv('SMTP_USERNAME', '')
        self.smtp_password = os.getenv('SMTP_PASSWORD', '')
        self.smtp_use_tls = os.getenv('SMTP_USE_TLS', 'false').lower() == 'true'
        self.smtp_start_tls = os.getenv('SMTP_START_TLS', 'true').lower() == 'true'
        self.timeout = float(os.getenv('SMTP_TIMEOUT', '20'))
        self.from_email = os.getenv('FROM_EMAIL', 'noreply@arcana-tarot.com')
        self.from_name = os.getenv('FROM_NAME', 'Arcana Tarot')
        self.reply_to_email = os.getenv('REPLY_TO_EMAIL', '')

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.from_email)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.smtp_host:
            errors.append("SMTP_HOST is required")
        if not self.smtp_port or self.smtp_port <= 0:
            errors.append("SMTP_PORT must be a positive integer")
        if not self.from_email:
            errors.append("FROM_EMAIL is required")
        if self.smtp_use_tls and self.smtp_start_tls:
            errors.append("SMTP_USE_TLS and SMTP_START_TLS cannot both be enabled")

        return errors

    def smtp_kwargs(self) -> Dict[str, Any]:
        return {
            'hostname': self.smtp_host,
            'port': self.smtp_port,
            'use_tls': self.smtp_use_tls,
            'start_tls': self.smtp_start_tls and not self.smtp_use_tls,
            'timeout': self.timeout,
        }


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self, config: Optional[EmailServiceConfig] = None):
        self.config = config or EmailServiceConfig()

    def build_message(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        message['From'] = f"{self.config.from_name} <{self.config.from_email}>"
        message['To'] = to_email
        message['Subject'] = subject
        message['Message-ID'] = make_msgid(domain=self.config.from_email.split('@')[-1] or None)
        if reply_to or self.config.reply_to_email:
            message['Reply-To'] = reply_to or self.config.reply_to_email
        # Plain part first so clients prefer the HTML alternative
        if text_content:
            message.attach(MIMEText(text_content, 'plain', 'utf-8'))
        message.attach(MIMEText(html_content, 'html', 'utf-8'))
        return message

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via SMTP.

        Returns:
            Dict with 'success' and either 'message_id' or 'error'
        """
        if not self.config.is_configured():
            return {
                'success': False,
                'error': 'Email service not configured'
            }

        message = self.build_message(to_email, subject, html_content, text_content, reply_to)
        try:
            async with aiosmtplib.SMTP(**self.config.smtp_kwargs()) as smtp:
                if self.config.smtp_username and self.config.smtp_password:
                    await smtp.login(self.config.smtp_username, self.config.smtp_password)
                await smtp.send_message(message)
        except Exception as e:
            error_msg = f"Failed to send email to {to_email}: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {
                'success': False,
                'error': error_msg
            }

        logger.info(f"Email sent successfully to {to_email}: {subject}")
        return {
            'success': True,
            'message_id': message['Message-ID'],
        }

    async def test_connection(self) -> Dict[str, Any]:
        """Test SMTP connection and configuration."""
        validation_errors = self.config.validate()
        if validation_errors:
            return {
                'success': False,
                'error': f"Configuration errors: {', '.join(validation_errors)}"
            }

        try:
            async with aiosmtplib.SMTP(**self.config.smtp_kwargs()) as smtp:
                if self.config.smtp_username and self.config.smtp_password:
                    await smtp.login(self.config.smtp_username, self.config.smtp_password)
        except Exception as e:
            return {
                'success': False,
                'error': f"Connection test failed: {str(e)}"
            }
        return {
            'success': True,
            'provider': 'smtp',
            'message': f"Successfully connected to {self.config.smtp_host}:{self.config.smtp_port}"
        }
