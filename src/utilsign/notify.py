"""Email notifications for the request-sign workflow.

:class:`Notifier` composes the messages; a mailer delivers them. With no
SMTP host configured, :class:`LogMailer` just logs what would have been
sent. Delivery errors propagate to the caller, which records them in the
audit trail and carries on.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from .config import ServiceConfig

logger = logging.getLogger("utilsign.notify")


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class LogMailer:
    """Logs messages instead of sending them."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("[mail] to=%s subject=%s", to, subject)


class SmtpMailer:
    """Sends plain-text mail through an SMTP relay."""

    def __init__(self, config: ServiceConfig) -> None:
        self.config = config

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.config.mail_from
        msg["To"] = to
        msg.set_content(body)

        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
            if self.config.smtp_starttls:
                server.starttls()
            if self.config.smtp_user:
                server.login(self.config.smtp_user, self.config.smtp_password or "")
            server.send_message(msg)
        logger.info("[mail] sent '%s' to %s", subject, to)


def build_mailer(config: ServiceConfig) -> Mailer:
    if config.smtp_host:
        return SmtpMailer(config)
    return LogMailer()


class Notifier:
    """The workflow's emails, one method per message."""

    def __init__(self, mailer: Mailer, app_url: str) -> None:
        self.mailer = mailer
        self.app_url = app_url.rstrip("/")

    def sign_link(self, signer_id: str) -> str:
        return f"{self.app_url}/sign/{signer_id}"

    def signing_request(
        self,
        to: str,
        sender: str,
        document_name: str,
        signer_id: str,
        message: Optional[str] = None,
    ) -> None:
        body = f'{sender} has requested your signature on "{document_name}".\n\n'
        if message:
            body += f"{message}\n\n"
        body += f"Review and sign: {self.sign_link(signer_id)}\n"
        self.mailer.send(
            to, f'{sender} has requested your signature on "{document_name}"', body
        )

    def broadcast(
        self,
        to: str,
        sender: str,
        document_name: str,
        current_signer: str,
        position: int,
        total: int,
    ) -> None:
        self.mailer.send(
            to,
            f'You are signer {position} of {total} on "{document_name}"',
            f'{sender} sent "{document_name}" for signature.\n'
            f"{current_signer} signs first; you will get a link when it is your turn.\n",
        )

    def your_turn(
        self,
        to: str,
        document_name: str,
        just_signed: str,
        signer_id: str,
        position: int,
        total: int,
    ) -> None:
        self.mailer.send(
            to,
            f'Your turn to sign "{document_name}"',
            f"{just_signed} has signed. You are signer {position} of {total}.\n\n"
            f"Review and sign: {self.sign_link(signer_id)}\n",
        )

    def progress(
        self,
        to: str,
        document_name: str,
        just_signed: str,
        next_signer: str,
        remaining: int,
    ) -> None:
        self.mailer.send(
            to,
            f'Progress on "{document_name}"',
            f"{just_signed} has signed. Next up: {next_signer}. "
            f"{remaining} signature(s) remaining.\n",
        )

    def completed(self, to: str, document_name: str, signed: list[tuple[str, str]]) -> None:
        lines = "\n".join(f"  {email}  {when}" for email, when in signed)
        self.mailer.send(
            to,
            f'"{document_name}" has been signed by everyone',
            f"All parties have signed:\n\n{lines}\n\n"
            f"Download it from your dashboard: {self.app_url}/dashboard\n",
        )

    def declined(self, to: str, document_name: str, signer_email: str, declined_at: str) -> None:
        self.mailer.send(
            to,
            f'{signer_email} declined to sign "{document_name}"',
            f'{signer_email} declined to sign "{document_name}" at {declined_at}.\n'
            "The document has been cancelled.\n",
        )
