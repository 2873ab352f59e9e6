"""Out-of-band delivery of OTP codes to customers.

The notifier is built once at application startup, opened before the first
request and closed at shutdown. The lifecycle engine receives it by
reference and never creates connections of its own.
"""
import logging
import smtplib
import threading
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from vendor_tracker.core.config import Settings

logger = logging.getLogger(__name__)

templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)

ACTIONS = {"start": "start", "closing": "close"}


@dataclass(frozen=True)
class NotifierAck:
    channel: str
    destination: str


class NotifierError(Exception):
    """Raised when a code could not be delivered.

    misconfigured is True when the notifier cannot work until its settings
    are fixed, and False for a transient failure worth retrying.
    """

    def __init__(self, message: str, misconfigured: bool = False):
        super().__init__(message)
        self.message = message
        self.misconfigured = misconfigured


class Notifier(Protocol):
    def open(self) -> None: ...

    def verify(self) -> bool: ...

    def close(self) -> None: ...

    def send(
        self,
        phone: str,
        email: str,
        code: str,
        *,
        purpose: str = "start",
        customer_name: str = "",
        event_name: str = "",
    ) -> NotifierAck: ...


def render_otp_message(
    code: str, purpose: str, customer_name: str, event_name: str, app_name: str, ttl_minutes: int
) -> str:
    """Render the customer-facing OTP message body."""
    return templates.get_template("otp_message.txt").render(
        code=code,
        action=ACTIONS.get(purpose, purpose),
        customer_name=customer_name or "there",
        event_name=event_name,
        app_name=app_name,
        ttl_minutes=ttl_minutes,
    )


class ConsoleNotifier:
    """Development notifier that writes codes to the application log."""

    def open(self) -> None:
        logger.info("Console notifier ready, OTP codes will be logged")

    def verify(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def send(
        self,
        phone: str,
        email: str,
        code: str,
        *,
        purpose: str = "start",
        customer_name: str = "",
        event_name: str = "",
    ) -> NotifierAck:
        logger.info(f"OTP sent ({purpose}) phone={phone} email={email} code={code}")
        return NotifierAck(channel="console", destination=email or phone)


class SmtpNotifier:
    """Emails OTP codes over a single long-lived SMTP connection."""

    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout_seconds: int = 10,
        app_name: str = "Vendor Event Tracker",
        ttl_minutes: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds
        self.app_name = app_name
        self.ttl_minutes = ttl_minutes
        self._connection: smtplib.SMTP | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            from_email=settings.smtp_from_email,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=settings.smtp_timeout_seconds,
            app_name=settings.app_name,
            ttl_minutes=settings.otp_ttl_minutes,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.from_email)

    def open(self) -> None:
        """Connect and authenticate.

        Raises:
            NotifierError: If settings are missing, login is rejected, or the
                server cannot be reached.
        """
        if not self.configured:
            raise NotifierError(
                "SMTP notifier is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required)",
                misconfigured=True,
            )
        with self._lock:
            self._connect()

    def _connect(self) -> None:
        try:
            connection = smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds)
            if self.use_tls:
                connection.starttls()
            if self.username:
                connection.login(self.username, self.password)
        except smtplib.SMTPAuthenticationError as e:
            raise NotifierError(f"SMTP login rejected: {e}", misconfigured=True) from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotifierError(f"Could not connect to SMTP server: {e}") from e
        self._connection = connection
        logger.info(f"Connected to SMTP server {self.host}:{self.port}")

    def verify(self) -> bool:
        """Check that the connection is still usable."""
        if self._connection is None:
            return False
        try:
            status, _ = self._connection.noop()
        except (smtplib.SMTPException, OSError):
            return False
        return status == 250

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            try:
                self._connection.quit()
            except (smtplib.SMTPException, OSError) as e:
                logger.warning(f"Error closing SMTP connection: {e}")
            self._connection = None
            logger.info("SMTP connection closed")

    def send(
        self,
        phone: str,
        email: str,
        code: str,
        *,
        purpose: str = "start",
        customer_name: str = "",
        event_name: str = "",
    ) -> NotifierAck:
        if not self.configured:
            raise NotifierError("SMTP notifier is not configured", misconfigured=True)
        if not email:
            raise NotifierError("Customer has no email address for OTP delivery")

        message = EmailMessage()
        message["Subject"] = f"{self.app_name} verification code"
        message["From"] = self.from_email
        message["To"] = email
        message.set_content(
            render_otp_message(
                code, purpose, customer_name, event_name, self.app_name, self.ttl_minutes
            )
        )

        with self._lock:
            if not self.verify():
                self._connect()
            try:
                self._connection.send_message(message)
            except (smtplib.SMTPException, OSError) as e:
                self._connection = None
                raise NotifierError(f"Failed to send OTP email: {e}") from e

        logger.info(f"OTP email ({purpose}) sent to {email}")
        return NotifierAck(channel="email", destination=email)


def build_notifier(settings: Settings) -> Notifier:
    """Construct the notifier selected by NOTIFIER_BACKEND."""
    if settings.notifier_backend == "smtp":
        return SmtpNotifier.from_settings(settings)
    if settings.notifier_backend != "console":
        logger.warning(f"Unknown notifier backend {settings.notifier_backend!r}, using console")
    return ConsoleNotifier()
