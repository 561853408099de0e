"""Templated digest email delivery over SMTP."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from crawler.settings import Settings
from crawler.utils.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


class MailerError(RuntimeError):
    """Rendering or sending a templated email failed."""


class TemplateMailer(Protocol):
    def send_template(self, template: str, recipient: str, subject: str, data: Mapping[str, Any]) -> str:
        """Render ``template`` with ``data`` and send it; return a receipt id."""


def build_environment(template_dir: Path = TEMPLATE_DIR) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_template(environment: Environment, template: str, data: Mapping[str, Any]) -> str:
    try:
        return environment.get_template(template).render(**data)
    except TemplateError as exc:
        raise MailerError(f"failed to render {template}: {exc}") from exc


class SmtpTemplateMailer:
    """Renders Jinja2 templates and delivers them with smtplib."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: str,
        timeout: float = 30.0,
        environment: Optional[Environment] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email
        self.timeout = timeout
        self.environment = environment or build_environment()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpTemplateMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password.get_secret_value() if settings.smtp_password else None,
            from_email=settings.smtp_from_email,
            timeout=settings.smtp_timeout_seconds,
        )

    def build_message(self, template: str, recipient: str, subject: str, data: Mapping[str, Any]) -> EmailMessage:
        html = render_template(self.environment, template, data)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = recipient
        message["Date"] = formatdate(localtime=False, usegmt=True)
        message["Message-ID"] = make_msgid(domain=self.from_email.rpartition("@")[2] or None)
        message.set_content("This digest is best viewed in an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    def send_template(self, template: str, recipient: str, subject: str, data: Mapping[str, Any]) -> str:
        message = self.build_message(template, recipient, subject, data)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.user and self.password:
                    server.starttls()
                    server.login(self.user, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailerError(f"failed to send digest to {recipient}: {exc}") from exc
        logger.info("mail.sent", extra={"recipient": recipient, "template": template, "message_id": message["Message-ID"]})
        return str(message["Message-ID"])
