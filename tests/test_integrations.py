"""Tests for the image store, the notifiers and their settings."""

import smtplib
from datetime import timedelta

import cloudinary.exceptions
import cloudinary.uploader
import pytest

from conftest import VENDOR_A
from vendor_tracker.core.config import Settings
from vendor_tracker.core.security import create_access_token, decode_token
from vendor_tracker.integrations.image_store import (
    CloudinaryImageStore,
    ImageConstraints,
    ImageUploadError,
)
from vendor_tracker.integrations.notifier import (
    ConsoleNotifier,
    NotifierError,
    SmtpNotifier,
    build_notifier,
    render_otp_message,
)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def cloudinary_store() -> CloudinaryImageStore:
    return CloudinaryImageStore("demo", "key", "secret", timeout_seconds=5)


class TestCloudinaryImageStore:
    """Tests for CloudinaryImageStore."""

    def test_upload(self, cloudinary_store, monkeypatch):
        calls = []

        def fake_upload(file, **options):
            calls.append((file.read(), options))
            return {
                "secure_url": "https://res.cloudinary.com/demo/image/upload/abc.jpg",
                "public_id": "zappy/vendor-checkins/abc",
            }

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

        uploaded = cloudinary_store.upload(
            b"jpeg-bytes", "zappy/vendor-checkins", ImageConstraints(800, 600)
        )

        assert uploaded.url == "https://res.cloudinary.com/demo/image/upload/abc.jpg"
        assert uploaded.public_id == "zappy/vendor-checkins/abc"
        payload, options = calls[0]
        assert payload == b"jpeg-bytes"
        assert options["folder"] == "zappy/vendor-checkins"
        assert options["timeout"] == 5
        assert options["transformation"] == [{"width": 800, "height": 600, "crop": "limit"}]

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(
            cloudinary.uploader, "upload", lambda *a, **k: pytest.fail("should not upload")
        )
        store = CloudinaryImageStore("", "", "")

        with pytest.raises(ImageUploadError) as exc_info:
            store.upload(b"x", "zappy", ImageConstraints())

        assert exc_info.value.misconfigured is True
        assert "CLOUDINARY_API_KEY" in exc_info.value.hint

    def test_invalid_signature(self, cloudinary_store, monkeypatch):
        def fake_upload(file, **options):
            raise cloudinary.exceptions.Error("Invalid Signature 1234. String to sign - ...")

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

        with pytest.raises(ImageUploadError) as exc_info:
            cloudinary_store.upload(b"x", "zappy", ImageConstraints())

        assert exc_info.value.misconfigured is True
        assert "CLOUDINARY_API_SECRET" in exc_info.value.hint

    def test_transient_failure(self, cloudinary_store, monkeypatch):
        def fake_upload(file, **options):
            raise ConnectionResetError("connection reset by peer")

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

        with pytest.raises(ImageUploadError) as exc_info:
            cloudinary_store.upload(b"x", "zappy", ImageConstraints())

        assert exc_info.value.misconfigured is False

    def test_from_settings_strips_quotes(self):
        settings = make_settings(
            cloudinary_cloud_name=" demo ",
            cloudinary_api_key="'123'",
            cloudinary_api_secret='"s3cret"\n',
        )

        assert settings.cloudinary_cloud_name == "demo"
        assert settings.cloudinary_api_key == "123"
        assert settings.cloudinary_api_secret == "s3cret"
        assert CloudinaryImageStore.from_settings(settings).configured is True


class FakeSMTP:
    """Stands in for smtplib.SMTP and records what it was asked to do."""

    instances: list["FakeSMTP"] = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.closed = False
        self.tls = False
        FakeSMTP.instances.append(self)

    def starttls(self):
        self.tls = True

    def login(self, username, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def noop(self):
        return (250, b"OK")

    def send_message(self, message):
        self.sent.append(message)

    def quit(self):
        self.closed = True


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_login = False
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def smtp_notifier(**overrides) -> SmtpNotifier:
    options = dict(
        host="smtp.example.com",
        port=587,
        from_email="otp@example.com",
        username="mailer",
        password="pw",
    )
    options.update(overrides)
    return SmtpNotifier(**options)


class TestSmtpNotifier:
    """Tests for SmtpNotifier."""

    def test_open_send_close(self, fake_smtp):
        notifier = smtp_notifier()
        notifier.open()

        ack = notifier.send(
            "+15550100",
            "sam@example.com",
            "482913",
            purpose="closing",
            customer_name="Sam",
            event_name="Birthday Party",
        )
        notifier.close()

        connection = fake_smtp.instances[0]
        assert connection.tls is True
        assert connection.closed is True
        assert ack.channel == "email"
        assert ack.destination == "sam@example.com"
        message = connection.sent[0]
        assert message["To"] == "sam@example.com"
        assert "482913" in message.get_content()
        assert "close" in message.get_content()

    def test_open_not_configured(self, fake_smtp):
        with pytest.raises(NotifierError) as exc_info:
            smtp_notifier(host="").open()

        assert exc_info.value.misconfigured is True
        assert fake_smtp.instances == []

    def test_login_rejected(self, fake_smtp):
        fake_smtp.fail_login = True

        with pytest.raises(NotifierError) as exc_info:
            smtp_notifier().open()

        assert exc_info.value.misconfigured is True

    def test_send_reconnects(self, fake_smtp):
        """A notifier that was never opened connects on first send."""
        notifier = smtp_notifier()

        notifier.send("+15550100", "sam@example.com", "111111")

        assert len(fake_smtp.instances) == 1

    def test_send_without_email(self, fake_smtp):
        notifier = smtp_notifier()
        notifier.open()

        with pytest.raises(NotifierError) as exc_info:
            notifier.send("+15550100", "", "111111")

        assert exc_info.value.misconfigured is False

    def test_close_without_open(self):
        smtp_notifier().close()


class TestNotifierHelpers:
    """Tests for message rendering and notifier selection."""

    def test_render_otp_message(self):
        body = render_otp_message("123456", "start", "Sam", "Birthday Party", "Tracker", 10)

        assert "Hello Sam," in body
        assert "to start your event \"Birthday Party\"" in body
        assert "123456" in body
        assert "10 minutes" in body

    def test_render_without_customer_name(self):
        body = render_otp_message("123456", "closing", "", "Gala", "Tracker", 5)
        assert body.startswith("Hello there,")

    def test_console_notifier(self, caplog):
        notifier = ConsoleNotifier()

        with caplog.at_level("INFO"):
            ack = notifier.send("+15550100", "sam@example.com", "654321")

        assert ack.channel == "console"
        assert "654321" in caplog.text

    def test_build_notifier(self):
        assert isinstance(build_notifier(make_settings()), ConsoleNotifier)
        assert isinstance(build_notifier(make_settings(notifier_backend="smtp")), SmtpNotifier)
        assert isinstance(build_notifier(make_settings(notifier_backend="pigeon")), ConsoleNotifier)


class TestVendorToken:
    """Tests for vendor token signing and decoding."""

    def test_round_trip(self):
        claims = decode_token(create_access_token(VENDOR_A))
        assert claims["sub"] == VENDOR_A

    def test_expired(self):
        token = create_access_token(VENDOR_A, expires_delta=timedelta(seconds=-5))
        assert decode_token(token) is None

    def test_tampered(self):
        header_and_claims = create_access_token(VENDOR_A).rsplit(".", 1)[0]
        assert decode_token(f"{header_and_claims}.bm90LWEtc2lnbmF0dXJl") is None
