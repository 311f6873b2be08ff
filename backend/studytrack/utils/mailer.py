"""
Mailer

Sends the partner-invitation emails over SMTP. Messages are rendered
from Jinja2 templates and delivered with aiosmtplib. Handlers receive a
`Mailer` through the `get_mailer` dependency and queue sends as
background tasks after their transaction commits, so delivery problems
are logged and never undo persisted rows.
"""

from __future__ import annotations

import logging
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import Settings, settings

logger = logging.getLogger("studytrack.mailer")

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class MailerConfig:
    """SMTP and link settings for outgoing mail."""

    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        smtp_use_ssl: bool = False,
        from_email: str = "",
        from_name: str = "",
        frontend_url: str = "http://localhost:3000",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.smtp_use_ssl = smtp_use_ssl
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_settings(cls, s: Settings) -> "MailerConfig":
        return cls(
            smtp_host=s.SMTP_HOST,
            smtp_port=s.SMTP_PORT,
            smtp_username=s.SMTP_USERNAME,
            smtp_password=s.SMTP_PASSWORD,
            smtp_use_tls=s.SMTP_USE_TLS,
            smtp_use_ssl=s.SMTP_USE_SSL,
            from_email=s.FROM_EMAIL,
            from_name=s.FROM_NAME,
            frontend_url=s.FRONTEND_URL,
        )

    def is_configured(self) -> bool:
        """Email is disabled until an SMTP host and sender are set."""
        return bool(self.smtp_host and self.smtp_port and self.from_email)


class Mailer:
    """Render templates and send them via SMTP."""

    def __init__(self, config: MailerConfig, template_dir: Path = TEMPLATE_DIR):
        self.config = config
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def invite_link(self, token: str) -> str:
        return f"{self.config.frontend_url}/partners/accept/{token}"

    def render(self, template_name: str, context: Dict[str, Any]) -> tuple[str, str]:
        """Return `(html, text)` for `<template_name>.html`."""
        html = self.template_env.get_template(f"{template_name}.html").render(**context)
        return html, _html_to_text(html)

    async def send(self, to_email: str, subject: str, html: str, text: Optional[str] = None) -> Dict[str, Any]:
        """
        Send one message.

        Returns a dict with `success` and either `smtp_result` or `error`;
        failures are logged, never raised.
        """
        if not self.config.is_configured():
            logger.warning("email not configured; skipping '%s' to %s", subject, to_email)
            return {"success": False, "error": "Email service not configured"}

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        message["To"] = to_email
        message["Subject"] = subject
        if text:
            message.attach(MIMEText(text, "plain", "utf-8"))
        message.attach(MIMEText(html, "html", "utf-8"))

        smtp_kwargs = {
            "hostname": self.config.smtp_host,
            "port": self.config.smtp_port,
        }
        if self.config.smtp_use_ssl:
            smtp_kwargs["use_tls"] = True
        else:
            smtp_kwargs["start_tls"] = self.config.smtp_use_tls
        try:
            async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
                if self.config.smtp_username and self.config.smtp_password:
                    await smtp.login(self.config.smtp_username, self.config.smtp_password)
                result = await smtp.send_message(message)
        except Exception as exc:
            logger.error("failed to send '%s' to %s: %s", subject, to_email, exc, exc_info=True)
            return {"success": False, "error": str(exc)}
        logger.info("email sent to %s: %s", to_email, subject)
        return {"success": True, "smtp_result": result}

    async def send_template(self, to_email: str, subject: str, template_name: str, context: Dict[str, Any]) -> Dict[str, Any]:
        try:
            html, text = self.render(template_name, context)
        except Exception as exc:
            logger.error("template %s failed to render: %s", template_name, exc, exc_info=True)
            return {"success": False, "error": str(exc)}
        return await self.send(to_email, subject, html, text)


def _html_to_text(html: str) -> str:
    text = re.sub(r"<[^>]+>", "", html)
    text = text.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")
    text = text.replace("&quot;", '"').replace("&#39;", "'")
    return re.sub(r"\s+", " ", text).strip()


@lru_cache(maxsize=1)
def get_mailer() -> Mailer:
    """FastAPI dependency returning the mailer built from settings."""
    return Mailer(MailerConfig.from_settings(settings))
