"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    Components receive this object (or values taken from it) at construction;
    nothing writes to it at runtime.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    app_name: str = "Servixing"
    app_url: str = "http://localhost:3000"
    # Comma separated, e.g. http://localhost:3000,https://servixing.com
    cors_origins: str = ""
    # Trusted proxy IPs (comma-separated). Used for X-Forwarded-For in production.
    trusted_proxy_ips: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # PAYMENT GATEWAYS
    # ===========================================
    default_payment_provider: str = "paystack"  # paystack, etegram, flutterwave
    default_currency: str = "NGN"
    warranty_check_fee: Decimal = Decimal("1000")
    payment_gateway_timeout: float = 15.0

    paystack_secret_key: str = ""
    paystack_api_url: str = "https://api.paystack.co"

    flutterwave_secret_key: str = ""
    flutterwave_secret_hash: str = ""  # webhook verif-hash
    flutterwave_api_url: str = "https://api.flutterwave.com"

    etegram_public_key: str = ""
    etegram_project_id: str = ""
    etegram_api_url: str = "https://api-checkout.etegram.com/api/transaction"

    # ===========================================
    # WARRANTY PROVIDERS
    # ===========================================
    warranty_provider_timeout: float = 10.0
    apple_warranty_api_key: str = ""
    apple_warranty_api_url: str = "https://api.applecoverage.example.com/v1"
    dell_client_id: str = ""
    dell_client_secret: str = ""
    dell_api_url: str = "https://apigtwb2c.us.dell.com"
    samsung_warranty_api_key: str = ""
    samsung_warranty_api_url: str = "https://api.samsungwarranty.example.com/v1"
    hp_warranty_api_key: str = ""
    hp_warranty_api_secret: str = ""
    hp_warranty_api_url: str = "https://warranty.api.hp.com"
    imei_check_api_key: str = ""
    imei_check_api_url: str = "https://api.imeicheck.net/v1"
    # Checks left IN_PROGRESS longer than this are re-queued by the watchdog
    warranty_check_stuck_minutes: int = 15

    # ===========================================
    # EMAIL (Resend)
    # ===========================================
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    email_from: str = "noreply@servixing.com"
    email_from_name: str = "Servixing"
    email_skip_in_dev: bool = True

    # ===========================================
    # SESSIONS (role checks)
    # ===========================================
    session_secret: str  # Required, no default
    session_ttl: int = 86400
    session_cookie_secure: bool = False  # Set True in production (HTTPS)
    session_cookie_samesite: str = "lax"

    # ===========================================
    # RATE LIMITS (public endpoints)
    # ===========================================
    public_init_rate_limit: int = 10
    public_verify_rate_limit: int = 20
    public_warranty_rate_limit: int = 30
    public_rate_limit_window_seconds: int = 600  # 10 min

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    circuit_breaker_backend: str = "redis"  # redis, memory
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # ===========================================
    # WEBHOOKS
    # ===========================================
    webhook_dedupe_ttl: int = 86400  # 24 hours

    @field_validator("default_payment_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("paystack", "etegram", "flutterwave"):
            raise ValueError(f"Unsupported payment provider: {v}")
        return v

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        """Ensure session secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("session_secret must be at least 16 characters")
        if v in ("changeme", "secret", "password", "admin"):
            raise ValueError("session_secret is too weak, please change it")
        return v

    @property
    def trusted_proxy_ips_set(self) -> set[str]:
        """Get trusted proxy IPs as a set."""
        return {ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
