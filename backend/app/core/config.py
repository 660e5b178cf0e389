"""Application configuration loaded from environment variables.

Settings for database, API, link security, calculation rates and the
Pipedrive / Slack integrations. Uses pydantic-settings for validation and
.env file support.

Services never read ``settings`` directly: they receive the frozen
``LinkPolicy`` and ``CalculationRates`` objects built here, so tests can
construct alternate parameters without touching global state.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "caselinks_dev_password"  # nosec B105

# Minimum length for LINK_PEPPER in production (256 bits = 32 bytes)
_MIN_PEPPER_LENGTH = 32


@dataclass(frozen=True)
class CalculationRates:
    """Per-W-2 multipliers used by the calculation engine.

    Attributes:
        rate_total: Total tax reduction per W-2.
        rate_er: Employer net savings per W-2.
        rate_ee: Employee reduction per W-2.

    Raises:
        ValueError: If rate_total is not exactly rate_er + rate_ee.
    """

    rate_total: Decimal
    rate_er: Decimal
    rate_ee: Decimal

    def __post_init__(self) -> None:
        if self.rate_total != self.rate_er + self.rate_ee:
            msg = (
                "rate_total must equal rate_er + rate_ee "
                f"(got {self.rate_total} != {self.rate_er} + {self.rate_ee})"
            )
            raise ValueError(msg)


@dataclass(frozen=True)
class LinkPolicy:
    """Lifecycle parameters for case links.

    Attributes:
        pepper: Server-held secret mixed into every token/passcode hash.
        link_expiry: Lifetime of a newly issued link.
        max_attempts: Failed passcode attempts before lockout.
        lock_duration: How long a lockout lasts.
        idempotency_window: Duplicate generation triggers inside this window
            are ignored.
    """

    pepper: str
    link_expiry: timedelta = timedelta(days=30)
    max_attempts: int = 10
    lock_duration: timedelta = timedelta(minutes=30)
    idempotency_window: timedelta = timedelta(seconds=60)


@dataclass(frozen=True)
class PipedriveFieldMap:
    """Custom field keys of the Pipedrive deal entity."""

    generate_proposal: str
    generate_yes_option: str
    industry: str
    w2_count: str
    case_page_url: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "case_links"
    database_user: str = "caselinks_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Default allows localhost:3000 for the viewer frontend in development
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Public URL of the case viewer (magic links point here)
    app_base_url: str = "http://localhost:3000"

    # Operator access to case generation endpoints (X-API-Key header)
    operator_api_key: SecretStr = SecretStr("")

    # Link security
    link_pepper: SecretStr = SecretStr("")
    link_expiry_days: int = 30
    max_attempts: int = 10
    lock_duration_minutes: int = 30
    idempotency_window_seconds: int = 60

    # Calculation multipliers (per W-2)
    rate_total: Decimal = Decimal("3356")
    rate_er: Decimal = Decimal("1186")
    rate_ee: Decimal = Decimal("2170")

    # Pipedrive
    pipedrive_webhook_secret: SecretStr = SecretStr("")
    pipedrive_base_url: str = "https://api.pipedrive.com/v1"
    pipedrive_api_token: SecretStr = SecretStr("")
    pipedrive_field_generate_proposal: str = ""
    pipedrive_option_generate_yes: str = ""
    pipedrive_field_industry: str = ""
    pipedrive_field_w2_count: str = ""
    pipedrive_field_case_page_url: str = ""

    # Slack
    slack_bot_token: SecretStr = SecretStr("")
    slack_default_channel: str = ""

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_validate: str = "30/minute"  # passcode verification per IP
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def link_policy(self) -> LinkPolicy:
        """Build the link lifecycle policy from current settings."""
        return LinkPolicy(
            pepper=self.link_pepper.get_secret_value(),
            link_expiry=timedelta(days=self.link_expiry_days),
            max_attempts=self.max_attempts,
            lock_duration=timedelta(minutes=self.lock_duration_minutes),
            idempotency_window=timedelta(seconds=self.idempotency_window_seconds),
        )

    def calculation_rates(self) -> CalculationRates:
        """Build the calculation multipliers from current settings."""
        return CalculationRates(
            rate_total=self.rate_total,
            rate_er=self.rate_er,
            rate_ee=self.rate_ee,
        )

    def pipedrive_fields(self) -> PipedriveFieldMap:
        """Build the Pipedrive custom field map from current settings."""
        return PipedriveFieldMap(
            generate_proposal=self.pipedrive_field_generate_proposal,
            generate_yes_option=self.pipedrive_option_generate_yes,
            industry=self.pipedrive_field_industry,
            w2_count=self.pipedrive_field_w2_count,
            case_page_url=self.pipedrive_field_case_page_url,
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Calculation rates must satisfy total = employer + employee
        - Expiry, attempt, lock and idempotency values must be positive
        - CORS must not use wildcard origin
        - Database password must not be the default in production
        - LINK_PEPPER must be set and >= 32 chars in production
        """
        if self.rate_total != self.rate_er + self.rate_ee:
            msg = (
                "RATE_TOTAL must equal RATE_ER + RATE_EE. "
                f"Got: {self.rate_total} != {self.rate_er} + {self.rate_ee}"
            )
            raise ValueError(msg)

        for name in (
            "link_expiry_days",
            "max_attempts",
            "lock_duration_minutes",
            "idempotency_window_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = "ALLOWED_ORIGINS must not contain '*' (wildcard)."
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            pepper = self.link_pepper.get_secret_value()
            if len(pepper) < _MIN_PEPPER_LENGTH:
                msg = (
                    f"LINK_PEPPER must be at least {_MIN_PEPPER_LENGTH} characters "
                    'in production. Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

        return self


settings = Settings()
