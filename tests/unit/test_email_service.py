from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from arcana.services.email_service import EmailService, EmailServiceConfig

SMTP_ENV = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": "2525",
    "SMTP_USERNAME": "mailer",
    "SMTP_PASSWORD": "pw",
    "FROM_EMAIL": "shop@example.com",
    "FROM_NAME": "Arcana Tarot",
}


@pytest.fixture
def smtp_env(monkeypatch):
    for key, value in SMTP_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("SMTP_USE_TLS", raising=False)
    monkeypatch.delenv("SMTP_START_TLS", raising=False)
    monkeypatch.delenv("REPLY_TO_EMAIL", raising=False)


def _smtp_mock():
    smtp = MagicMock()
    smtp.login = AsyncMock()
    smtp.send_message = AsyncMock()
    smtp.__aenter__ = AsyncMock(return_value=smtp)
    smtp.__aexit__ = AsyncMock(return_value=False)
    return smtp


def test_config_validation(monkeypatch, smtp_env):
    cfg = EmailServiceConfig()
    assert cfg.is_configured() is True
    assert cfg.validate() == []
    assert cfg.smtp_kwargs() == {
        "hostname": "smtp.example.com",
        "port": 2525,
        "use_tls": False,
        "start_tls": True,
        "timeout": 20.0,
    }

    monkeypatch.setenv("SMTP_USE_TLS", "true")
    errors = EmailServiceConfig().validate()
    assert errors == ["SMTP_USE_TLS and SMTP_START_TLS cannot both be enabled"]

    monkeypatch.setenv("SMTP_HOST", "")
    monkeypatch.setenv("SMTP_START_TLS", "false")
    cfg = EmailServiceConfig()
    assert cfg.is_configured() is False
    assert any("SMTP_HOST" in e for e in cfg.validate())


def test_build_message(smtp_env, monkeypatch):
    monkeypatch.setenv("REPLY_TO_EMAIL", "help@example.com")
    message = EmailService().build_message("reader@example.com", "Hello", "<p>Hi</p>", "Hi")
    assert message["From"] == "Arcana Tarot <shop@example.com>"
    assert message["To"] == "reader@example.com"
    assert message["Reply-To"] == "help@example.com"
    assert message["Message-ID"].endswith("@example.com>")
    parts = message.get_payload()
    assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_send_email_success(smtp_env):
    smtp = _smtp_mock()
    with patch("arcana.services.email_service.aiosmtplib.SMTP", return_value=smtp) as factory:
        result = await EmailService().send_email("reader@example.com", "Hello", "<p>Hi</p>")
    assert result["success"] is True
    assert result["message_id"]
    factory.assert_called_once_with(hostname="smtp.example.com", port=2525, use_tls=False, start_tls=True, timeout=20.0)
    smtp.login.assert_awaited_once_with("mailer", "pw")
    smtp.send_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_send_email_failure_is_reported(smtp_env):
    smtp = _smtp_mock()
    smtp.send_message = AsyncMock(side_effect=OSError("connection reset"))
    with patch("arcana.services.email_service.aiosmtplib.SMTP", return_value=smtp):
        result = await EmailService().send_email("reader@example.com", "Hello", "<p>Hi</p>")
    assert result["success"] is False
    assert "connection reset" in result["error"]


@pytest.mark.asyncio
async def test_send_email_not_configured(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "")
    result = await EmailService().send_email("reader@example.com", "Hello", "<p>Hi</p>")
    assert result == {"success": False, "error": "Email service not configured"}


@pytest.mark.asyncio
async def test_connection_check(smtp_env):
    smtp = _smtp_mock()
    with patch("arcana.services.email_service.aiosmtplib.SMTP", return_value=smtp):
        result = await EmailService().test_connection()
    assert result["success"] is True
    assert "smtp.example.com:2525" in result["message"]
