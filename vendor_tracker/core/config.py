"""Application configuration via environment variables."""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Vendor Event Tracker"
    debug: bool = False
    environment: str = "production"  # "development" exposes raw OTP codes in responses
    secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    log_dir: Path = Path.home() / ".logs" / "vendor_tracker"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./vendor_tracker.db"

    # OTP
    otp_ttl_minutes: int = 10

    # Cloudinary
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    image_folder_root: str = "zappy"
    image_max_dimension: int = 1080
    image_upload_timeout_seconds: int = 30
    max_setup_photos: int = 10

    # Notifier
    notifier_backend: str = "console"  # "console" or "smtp"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: int = 10

    @field_validator(
        "cloudinary_cloud_name", "cloudinary_api_key", "cloudinary_api_secret", mode="before"
    )
    @classmethod
    def strip_credential(cls, value):
        # Trailing spaces and wrapping quotes are common .env copy/paste mistakes
        if isinstance(value, str):
            return value.strip().strip("'\"")
        return value

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
