"""Notification sinks for run summaries."""

from __future__ import annotations

import smtplib
import ssl
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional

from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.logging import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Delivers a plain-text message to one recipient."""

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes notifications to the log; used when no SMTP server is configured."""

    def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("Notification for %s: %s\n%s", recipient, subject, body)


class SmtpNotifier(Notifier):
    """Sends notifications through an SMTP server with optional STARTTLS."""

    def __init__(
        self,
        server: str,
        port: int,
        from_email: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = 30,
    ) -> None:
        self.server = server
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings) -> "SmtpNotifier":
        if not config.smtp_host:
            raise ValueError("SMTP_HOST is required for email notifications")
        return cls(
            server=config.smtp_host,
            port=config.smtp_port,
            from_email=config.notification_from,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            timeout=config.smtp_timeout_seconds,
        )

    def build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid()
        msg.set_content(body)
        return msg

    def send(self, recipient: str, subject: str, body: str) -> None:
        msg = self.build_message(recipient, subject, body)
        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            refused = server.send_message(msg)
        if refused:
            logger.warning("SMTP refused recipients: %s", refused)
        logger.info("Notification sent to %s: %s", recipient, subject)


def notifier_from_settings(config: Settings) -> Notifier:
    """SMTP when a host is configured, the log otherwise."""
    if config.smtp_host:
        return SmtpNotifier.from_settings(config)
    return LogNotifier()
