"""
Transactional Email Service

Sends shop emails (welcome, password reset, order confirmation) through the
provider selected by ``EMAIL_PROVIDER``:
- Resend (default)
- SendGrid
- Mailgun (HTTP API via requests)
- SMTP (aiosmtplib, see ``email_service``)

``EMAIL_METHOD`` is accepted as an older alias of ``EMAIL_PROVIDER`` and its
``nodemailer`` value maps to SMTP.
"""

import os
import logging
import re
from typing import Optional, Dict, Any, List
from enum import Enum
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from pathlib import Path

from arcana.services.email_service import EmailService, EmailServiceConfig

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

_PROVIDER_ALIASES = {"nodemailer": "smtp"}


class EmailProvider(Enum):
    """Supported email service providers."""
    RESEND = "resend"
    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    SMTP = "smtp"


def _provider_from_env() -> EmailProvider:
    raw = (os.getenv('EMAIL_PROVIDER') or os.getenv('EMAIL_METHOD') or 'resend').strip().lower()
    return EmailProvider(_PROVIDER_ALIASES.get(raw, raw))


class TransactionalEmailConfig:
    """Configuration for transactional email services."""

    def __init__(self):
        self.provider = _provider_from_env()

        self.from_email = os.getenv('FROM_EMAIL', 'noreply@arcana-tarot.com')
        self.from_name = os.getenv('FROM_NAME', 'Arcana Tarot')
        self.reply_to_email = os.getenv('REPLY_TO_EMAIL', '')

        self.resend_api_key = os.getenv('RESEND_API_KEY', '')
        self.sendgrid_api_key = os.getenv('SENDGRID_API_KEY', '')
        self.mailgun_api_key = os.getenv('MAILGUN_API_KEY', '')
        self.mailgun_domain = os.getenv('MAILGUN_DOMAIN', '')

        self.template_dir = os.getenv('EMAIL_TEMPLATE_DIR') or str(DEFAULT_TEMPLATE_DIR)

    def smtp_config(self) -> EmailServiceConfig:
        return EmailServiceConfig()

    def is_configured(self) -> bool:
        """Check if the selected provider has the credentials it needs."""
        if not self.from_email:
            return False
        if self.provider == EmailProvider.RESEND:
            return bool(self.resend_api_key)
        if self.provider == EmailProvider.SENDGRID:
            return bool(self.sendgrid_api_key)
        if self.provider == EmailProvider.MAILGUN:
            return bool(self.mailgun_api_key and self.mailgun_domain)
        if self.provider == EmailProvider.SMTP:
            return self.smtp_config().is_configured()
        return False

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.from_email:
            errors.append("FROM_EMAIL is required")

        if self.provider == EmailProvider.RESEND:
            if not self.resend_api_key:
                errors.append("RESEND_API_KEY is required for Resend provider")
        elif self.provider == EmailProvider.SENDGRID:
            if not self.sendgrid_api_key:
                errors.append("SENDGRID_API_KEY is required for SendGrid provider")
        elif self.provider == EmailProvider.MAILGUN:
            if not self.mailgun_api_key:
                errors.append("MAILGUN_API_KEY is required for Mailgun provider")
            if not self.mailgun_domain:
                errors.append("MAILGUN_DOMAIN is required for Mailgun provider")
        elif self.provider == EmailProvider.SMTP:
            errors.extend(self.smtp_config().validate())

        return errors

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"


class ResendEmailService:
    """Resend delivery."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        self.client = None
        self._setup_client()

    def _setup_client(self):
        try:
            import resend
        except ImportError:
            logger.error("Resend library not installed. Install with: pip install resend")
            raise
        resend.api_key = self.config.resend_api_key
        self.client = resend

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "from": self.config.sender,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content
        if self.config.reply_to_email:
            params["reply_to"] = self.config.reply_to_email
        try:
            result = self.client.Emails.send(params)
        except Exception as e:
            return {'success': False, 'provider': 'resend', 'error': str(e)}
        return {'success': True, 'provider': 'resend', 'message_id': result.get('id', '')}


class SendGridEmailService:
    """SendGrid delivery."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        self.client = None
        self._setup_client()

    def _setup_client(self):
        try:
            from sendgrid import SendGridAPIClient
        except ImportError:
            logger.error("SendGrid library not installed. Install with: pip install sendgrid")
            raise
        self.client = SendGridAPIClient(api_key=self.config.sendgrid_api_key)

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> Dict[str, Any]:
        try:
            from sendgrid.helpers.mail import Mail, From, To, Subject, HtmlContent, PlainTextContent

            mail = Mail(
                from_email=From(self.config.from_email, self.config.from_name),
                to_emails=To(to_email),
                subject=Subject(subject),
                html_content=HtmlContent(html_content),
            )
            if text_content:
                mail.plain_text_content = PlainTextContent(text_content)
            if self.config.reply_to_email:
                mail.reply_to = self.config.reply_to_email
            response = self.client.send(mail)
        except Exception as e:
            return {'success': False, 'provider': 'sendgrid', 'error': str(e)}
        return {
            'success': True,
            'provider': 'sendgrid',
            'message_id': response.headers.get('X-Message-Id', ''),
            'status_code': response.status_code,
        }


class MailgunEmailService:
    """Mailgun delivery over its HTTP API."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        self._setup_client()

    def _setup_client(self):
        import requests
        self.requests = requests
        self.base_url = f"https://api.mailgun.net/v3/{self.config.mailgun_domain}"

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> Dict[str, Any]:
        data = {
            "from": self.config.sender,
            "to": to_email,
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            data["text"] = text_content
        if self.config.reply_to_email:
            data["h:Reply-To"] = self.config.reply_to_email
        try:
            response = self.requests.post(
                f"{self.base_url}/messages",
                auth=("api", self.config.mailgun_api_key),
                data=data,
                timeout=15,
            )
        except Exception as e:
            return {'success': False, 'provider': 'mailgun', 'error': str(e)}
        if response.status_code != 200:
            return {'success': False, 'provider': 'mailgun', 'error': f"HTTP {response.status_code}: {response.text}"}
        return {'success': True, 'provider': 'mailgun', 'message_id': response.json().get('id', '')}


class SmtpEmailService:
    """SMTP delivery through the aiosmtplib-backed EmailService."""

    def __init__(self, config: TransactionalEmailConfig, smtp_service: Optional[EmailService] = None):
        self.config = config
        self.smtp = smtp_service or EmailService(config.smtp_config())

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> Dict[str, Any]:
        result = await self.smtp.send_email(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
        )
        return {**result, 'provider': 'smtp'}


_PROVIDER_CLASSES = {
    EmailProvider.RESEND: ResendEmailService,
    EmailProvider.SENDGRID: SendGridEmailService,
    EmailProvider.MAILGUN: MailgunEmailService,
    EmailProvider.SMTP: SmtpEmailService,
}


class TransactionalEmailService:
    """Main transactional email service that delegates to provider implementations."""

    def __init__(self, config: Optional[TransactionalEmailConfig] = None):
        self.config = config or TransactionalEmailConfig()
        self.provider_service = None
        self.template_env = None
        self._setup_provider()
        self._setup_templates()

    def _setup_provider(self):
        if not self.config.is_configured():
            logger.warning("Email service not configured (provider=%s)", self.config.provider.value)
            return
        try:
            self.provider_service = _PROVIDER_CLASSES[self.config.provider](self.config)
            logger.info("Initialized %s email service", self.config.provider.value)
        except Exception as e:
            logger.error(f"Failed to initialize email provider {self.config.provider.value}: {e}")

    def _setup_templates(self):
        template_path = Path(self.config.template_dir)
        if not template_path.exists():
            logger.warning(f"Email template directory not found: {template_path}")
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_path)),
            autoescape=select_autoescape(["html"]),
        )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via the configured provider.

        Returns:
            Dict with 'success', 'provider', and either 'message_id' or 'error'
        """
        if not self.provider_service:
            return {
                'success': False,
                'error': 'Email service not configured or initialization failed'
            }

        logger.info(f"Sending email to {to_email} via {self.config.provider.value}")
        try:
            result = await self.provider_service.send_email(
                to_email=to_email,
                subject=subject,
                html_content=html_content,
                text_content=text_content,
            )
        except Exception as e:
            error_msg = f"Email service error: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {'success': False, 'error': error_msg}

        if result.get('success'):
            logger.info(f"Email sent to {to_email} via {result.get('provider')}")
        else:
            logger.error(f"Email sending failed: {result.get('error')}")
        return result

    def render_template(self, template_name: str, context: Dict[str, Any]) -> tuple[str, str]:
        """
        Render ``<name>.html`` and, when present, ``<name>.txt``.

        Returns:
            Tuple of (html_content, text_content)
        """
        html_content = self.template_env.get_template(f"{template_name}.html").render(**context)
        try:
            text_content = self.template_env.get_template(f"{template_name}.txt").render(**context)
        except TemplateNotFound:
            text_content = self._html_to_text(html_content)
        return html_content, text_content

    @staticmethod
    def _html_to_text(html_content: str) -> str:
        text = re.sub(r'<(br|/p|/tr|/h\d)[^>]*>', '\n', html_content, flags=re.IGNORECASE)
        text = re.sub(r'<[^>]+>', '', text)
        text = text.replace('&amp;', '&').replace('&lt;', '<').replace('&gt;', '>')
        text = text.replace('&quot;', '"').replace('&#39;', "'")
        text = re.sub(r'[ \t]+', ' ', text)
        return re.sub(r'\n\s*\n+', '\n\n', text).strip()

    async def test_connection(self) -> Dict[str, Any]:
        """Check configuration; SMTP additionally opens a connection."""
        validation_errors = self.config.validate()
        if validation_errors:
            return {
                'success': False,
                'error': f"Configuration errors: {', '.join(validation_errors)}"
            }
        if not self.provider_service:
            return {'success': False, 'error': 'Email provider service not initialized'}
        if isinstance(self.provider_service, SmtpEmailService):
            return await self.provider_service.smtp.test_connection()
        return {
            'success': True,
            'provider': self.config.provider.value,
            'message': f"Email service configured and ready ({self.config.provider.value})"
        }


# Global email service instance
_email_service = None


def get_transactional_email_service() -> TransactionalEmailService:
    """Get singleton transactional email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = TransactionalEmailService()
    return _email_service


def reset_transactional_email_service_for_tests() -> None:
    global _email_service
    _email_service = None
