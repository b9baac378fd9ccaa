import os
from dataclasses import dataclass


MIN_PASSWORD_HASH_ROUNDS = 10


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment by ``load_settings``."""

    database_url: str | None = None
    database_name: str = "pharmacy"

    secret_key: str = "supersecretkey-change"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12
    password_hash_rounds: int = 12

    smtp_server: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from_email: str = "orders@abukhadija-pharmacy.com"
    admin_email: str | None = None

    whatsapp_api_base: str = "https://graph.facebook.com"
    whatsapp_api_version: str = "v22.0"
    whatsapp_phone_number_id: str | None = None
    whatsapp_access_token: str | None = None
    admin_whatsapp_number: str | None = None

    notify_max_workers: int = 4
    notify_timeout_seconds: float = 5.0

    port: int = 8000
    environment: str = "development"

    def __post_init__(self):
        if self.password_hash_rounds < MIN_PASSWORD_HASH_ROUNDS:
            raise ValueError(f"PASSWORD_HASH_ROUNDS must be at least {MIN_PASSWORD_HASH_ROUNDS}")
        if self.notify_max_workers < 1:
            raise ValueError("NOTIFY_MAX_WORKERS must be at least 1")

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_server and self.admin_email)

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_phone_number_id and self.whatsapp_access_token and self.admin_whatsapp_number)


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME", "pharmacy"),
        secret_key=os.getenv("SECRET_KEY", "supersecretkey-change"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12)),
        password_hash_rounds=int(os.getenv("PASSWORD_HASH_ROUNDS", 12)),
        smtp_server=os.getenv("SMTP_SERVER"),
        smtp_port=int(os.getenv("SMTP_PORT", 587)),
        smtp_username=os.getenv("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD"),
        smtp_from_email=os.getenv("SMTP_FROM_EMAIL", "orders@abukhadija-pharmacy.com"),
        admin_email=os.getenv("ADMIN_EMAIL"),
        whatsapp_api_base=os.getenv("WHATSAPP_API_BASE", "https://graph.facebook.com"),
        whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v22.0"),
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID"),
        whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN"),
        admin_whatsapp_number=os.getenv("ADMIN_WHATSAPP_NUMBER"),
        notify_max_workers=int(os.getenv("NOTIFY_MAX_WORKERS", 4)),
        notify_timeout_seconds=float(os.getenv("NOTIFY_TIMEOUT_SECONDS", 5)),
        port=int(os.getenv("PORT", 8000)),
        environment=os.getenv("ENVIRONMENT", "development").lower(),
    )
