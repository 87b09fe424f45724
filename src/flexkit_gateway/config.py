"""FlexKit Gateway — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables.

    A single instance is built by :func:`flexkit_gateway.main.create_app`
    and handed to every component that needs it.
    """

    # ── App ───────────────────────────────────────────────
    app_name: str = "FlexKit Ten"
    app_env: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = ""
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./flexkit_gateway.db"

    # ── Mindbody API ──────────────────────────────────────
    mindbody_api_base_url: str = "https://api.mindbodyonline.com/public/v6"
    mindbody_api_key: str = ""
    mindbody_site_id: str = ""
    mindbody_source_name: str = ""
    mindbody_password: str = ""
    mindbody_staff_username: str = ""
    mindbody_staff_password: str = ""
    mindbody_timeout_seconds: float = 30.0
    mindbody_max_attempts: int = 3
    mindbody_retry_delay_seconds: float = 1.0
    mindbody_requests_per_minute: int = 1000
    mindbody_requests_per_day: int = 2000

    # ── Tokens & OTP ──────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = ""
    access_token_ttl_seconds: int = 24 * 60 * 60
    otp_ttl_seconds: int = 10 * 60
    otp_token_ttl_seconds: int = 10 * 60
    otp_delivery_bypass: bool = False
    client_profile_ttl_days: int = 30

    # ── Email (SMTP) ──────────────────────────────────────
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = True
    email_from: str = "noreply@flexkit.app"
    email_from_name: str = "FlexKit"

    # ── HTTP ──────────────────────────────────────────────
    cors_origins: list[str] = ["*"]

    # ── Timetable business rules ──────────────────────────
    excluded_location_ids: list[int] = [7, 10]
    class_program_ids: list[int] = [22]
    late_cancel_window_hours: int = 12
    default_location_id: int = 1

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def token_issuer(self) -> str:
        return self.jwt_issuer or self.app_name

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def delivery_bypass_active(self) -> bool:
        """Skip real email delivery and log OTP codes instead.

        Only honoured outside production, and only when explicitly enabled.
        """
        return self.otp_delivery_bypass and not self.is_production
