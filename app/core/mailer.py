"""Outbound mail over SMTP."""

import asyncio
import smtplib
from email.message import EmailMessage

from structlog import get_logger

from app.config import settings

logger = get_logger(__name__)


class MailDeliveryError(Exception):
    """Mail could not be handed to the SMTP server."""


class Mailer:
    """SMTP mailer.

    ``smtplib`` is blocking, so each message is sent from a worker thread and
    bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
        timeout: float = 10.0,
    ):
        """Initialize mailer with SMTP connection settings."""
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def _build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """
        Send a plain-text email.

        Args:
            recipient: Destination address
            subject: Subject line
            body: Plain-text body

        Raises:
            MailDeliveryError: If SMTP is not configured, fails or times out
        """
        if not self.is_configured:
            raise MailDeliveryError("SMTP host is not configured")

        message = self._build_message(recipient, subject, body)
        try:
            await asyncio.wait_for(asyncio.to_thread(self._deliver, message), timeout=self.timeout)
        except TimeoutError as e:
            raise MailDeliveryError(f"SMTP delivery timed out after {self.timeout}s") from e
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(str(e)) from e

        logger.info("mail_sent", recipient=recipient, subject=subject)


_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    """Get or create the process-wide mailer."""
    global _mailer

    if _mailer is None:
        _mailer = Mailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.mail_from,
            timeout=settings.mail_timeout_seconds,
        )

    return _mailer
