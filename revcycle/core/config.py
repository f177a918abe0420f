"""
Claims Engine Configuration
Settings for scrub, clearinghouse and reconciliation behaviour.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from revcycle.core.enums import IntegrationMode

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class ClaimsSettings(BaseSettings):
    """
    Revenue-cycle configuration settings.

    All settings are read from the environment with the CLAIMS_ prefix,
    e.g. CLAIMS_INTEGRATION_MODE=live.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="CLAIMS_",
    )

    # =========================================================================
    # Integration Mode
    # =========================================================================
    INTEGRATION_MODE: IntegrationMode = Field(
        default=IntegrationMode.DEMO,
        description="Integration mode: demo (simulated clearinghouse) or live",
    )

    # =========================================================================
    # Clearinghouse Configuration
    # =========================================================================
    CLEARINGHOUSE_BASE_URL: str = Field(
        default="https://clearinghouse.example.com/v1",
        description="Base URL of the live clearinghouse API",
    )
    CLEARINGHOUSE_API_KEY: Optional[str] = Field(
        default=None,
        description="API key for the live clearinghouse",
    )
    CLEARINGHOUSE_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single submit/status call",
    )
    CLEARINGHOUSE_RETRY_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Attempts for retryable transport errors (rate limits)",
    )
    CLEARINGHOUSE_RETRY_DELAY_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff between retry attempts",
    )
    SUBMITTER_ID: str = Field(
        default="REVCYCLE01",
        description="Submitter identifier sent with every transaction",
    )
    SIMULATOR_REJECT_PAYERS: list[str] = Field(
        default_factory=list,
        description="Payer IDs the simulator rejects (demo/testing aid)",
    )

    # =========================================================================
    # Claim Configuration
    # =========================================================================
    CLAIM_NUMBER_PREFIX: str = Field(
        default="CLM",
        min_length=1,
        max_length=6,
        description="Prefix of generated claim numbers (CLM-2026-000001)",
    )
    SCRUB_RULES_PATH: Path = Field(
        default=DATA_DIR / "scrub_rules.json",
        description="Scrub rule catalog (JSON)",
    )
    CODE_REFERENCE_PATH: Path = Field(
        default=DATA_DIR / "code_reference.json",
        description="Procedure/diagnosis reference data (JSON)",
    )

    # =========================================================================
    # Reconciliation Configuration
    # =========================================================================
    RECONCILIATION_CONCURRENCY: int = Field(
        default=8,
        ge=1,
        description="Maximum claims reconciled in parallel within one batch",
    )

    @field_validator("CLAIM_NUMBER_PREFIX")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Claim number prefixes are upper-case alphanumerics."""
        if not v.isalnum():
            raise ValueError("CLAIM_NUMBER_PREFIX must be alphanumeric")
        return v.upper()

    @property
    def is_demo_mode(self) -> bool:
        """Check if running in demo mode."""
        return self.INTEGRATION_MODE == IntegrationMode.DEMO

    @property
    def is_live_mode(self) -> bool:
        """Check if running in live mode."""
        return self.INTEGRATION_MODE == IntegrationMode.LIVE


# Singleton instance
_claims_settings: Optional[ClaimsSettings] = None


def get_claims_settings() -> ClaimsSettings:
    """
    Get cached claims settings instance.

    Returns:
        ClaimsSettings instance
    """
    global _claims_settings
    if _claims_settings is None:
        _claims_settings = ClaimsSettings()
    return _claims_settings


def reset_claims_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _claims_settings
    _claims_settings = None
