"""
SMTP Mailer
===========
Delivers one rendered simulation email over SMTP.

``send`` reports success as a boolean and never raises for delivery
problems; the dispatcher treats ``False`` as a per-recipient transport
failure.
"""

import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import parseaddr
from typing import Optional
import logging

from ..config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    """
    SMTP transport for campaign emails.
    Supports STARTTLS (typically port 587) and implicit TLS (port 465).
    With ``use_tls`` a server without STARTTLS is treated as a failed send.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 30.0
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout,
        )

    def is_configured(self) -> bool:
        """Check if SMTP is properly configured."""
        return bool(self.host and self.port)

    @staticmethod
    def _address(value: str) -> Optional[str]:
        _, addr = parseaddr(value or "")
        if not addr or "@" not in addr:
            return None
        return addr

    def build_message(self, from_address: str, to_address: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_address
        msg["To"] = to_address
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def send(self, from_address: str, to_address: str, subject: str, html_body: str) -> bool:
        """
        Send one HTML email.

        Args:
            from_address: Envelope/header sender (campaign from address)
            to_address: Recipient email address
            subject: Rendered subject
            html_body: Rendered HTML body

        Returns:
            True when the server accepted the message
        """
        if not self.is_configured():
            logger.error("SMTP not configured; set SMTP_HOST and SMTP_PORT")
            return False

        sender = self._address(from_address)
        recipient = self._address(to_address)
        if not sender:
            logger.error(f"Invalid from address: {from_address!r}")
            return False
        if not recipient:
            logger.error(f"Invalid to address: {to_address!r}")
            return False

        msg = self.build_message(from_address, to_address, subject, html_body)
        context = ssl.create_default_context()

        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.ehlo()
                    if not server.has_extn("starttls"):
                        logger.error(f"{self.host}:{self.port} does not offer STARTTLS; refusing to send in plaintext")
                        return False
                    server.starttls(context=context)
                    server.ehlo()
                    if self.username and self.password:
                        server.login(self.username, self.password)
                    server.sendmail(sender, [recipient], msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    if self.username and self.password:
                        server.login(self.username, self.password)
                    server.sendmail(sender, [recipient], msg.as_string())

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP auth error: {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipient refused: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {recipient}: {e}")
            return False
        except OSError as e:
            logger.error(f"SMTP connection error ({self.host}:{self.port}): {e}")
            return False

        logger.info(f"Email sent to {recipient}")
        return True
