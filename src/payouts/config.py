"""Service configuration.

``Settings`` reads the environment and an optional ``.env`` file through
pydantic-settings.  ``Settings.payout_config()`` narrows it to the frozen
``PayoutConfig`` the payout service receives at construction, so fee and
timing parameters never live in module state.

Nothing from the rest of ``payouts`` is imported here; every other module
may import this one.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

# 0.0005 SOL in lamports.
DEFAULT_ANTI_SPAM_FEE = 500_000
DEFAULT_PLATFORM_FEE_BPS = 1000
MAX_REASON_LENGTH = 500


class PayoutConfig(BaseModel):
    """Fee and timing parameters for the payout engine.

    Passed explicitly into the service so tests can vary them without
    touching the environment.
    """

    model_config = ConfigDict(frozen=True)

    system_address: str
    anti_spam_fee_amount: int = Field(default=DEFAULT_ANTI_SPAM_FEE, ge=0)
    platform_fee_bps: int = Field(default=DEFAULT_PLATFORM_FEE_BPS, ge=0, le=10_000)
    verifier_timeout_seconds: float = Field(default=20.0, gt=0)
    stuck_lease_seconds: int = Field(default=90, ge=0)
    max_reason_length: int = Field(default=MAX_REASON_LENGTH, gt=0)


class Settings(BaseSettings):
    """Environment-backed settings; names match case-insensitively.

    The Anthropic key is a ``SecretStr`` so it renders masked in reprs and logs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    api_port: int = 8000

    # -- Ledger ----------------------------------------------------------------
    ledger_db_path: Path = Path("data/ledger.db")

    # -- Fees ------------------------------------------------------------------
    system_wallet_address: str = ""
    anti_spam_fee_amount: int = DEFAULT_ANTI_SPAM_FEE
    platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS

    # -- Verifiers -------------------------------------------------------------
    verifier_timeout_seconds: float = 20.0
    stuck_submission_lease_seconds: int = 90
    solana_rpc_url: str = ""
    x_api_base_url: str = "https://api.x.com/2"

    # -- LLM / Anthropic -------------------------------------------------------
    anthropic_api_key: SecretStr = SecretStr("")
    content_check_model: str = "claude-haiku-4-5-20251001"

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""

    def payout_config(self) -> PayoutConfig:
        """Build the frozen engine configuration from these settings."""
        return PayoutConfig(
            system_address=self.system_wallet_address,
            anti_spam_fee_amount=self.anti_spam_fee_amount,
            platform_fee_bps=self.platform_fee_bps,
            verifier_timeout_seconds=self.verifier_timeout_seconds,
            stuck_lease_seconds=self.stuck_submission_lease_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process.

    Tests call ``get_settings.cache_clear()`` to pick up a changed environment.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # exc.errors() carries field locations only, never SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


# Settings field -> environment variable, for credentials the service cannot run without.
_REQUIRED_CREDENTIALS: dict[str, str] = {
    "system_wallet_address": "SYSTEM_WALLET_ADDRESS",
    "solana_rpc_url": "SOLANA_RPC_URL",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
}


def missing_credentials(settings: Settings) -> list[str]:
    """Return the environment variable names of unset required credentials."""
    missing: list[str] = []
    for field, env_name in _REQUIRED_CREDENTIALS.items():
        value = getattr(settings, field)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if not value:
            missing.append(env_name)
    return missing


def validate_credentials(settings: Settings) -> None:
    """Refuse to start in production without the fee wallet, RPC url and Claude key.

    Development mode only logs a warning per missing credential; the payout
    service then stays disabled and ``/ready`` reports it.

    Args:
        settings: The loaded application settings.
    """
    missing = missing_credentials(settings)
    if not missing:
        logger.info("credential_validation_passed")
        return

    if not settings.production:
        for env_name in missing:
            logger.warning("credential_missing_dev", variable=env_name)
        return

    logger.error("credential_missing", variables=missing)
    lines = ["", "=== STARTUP FAILED ===", "Production mode requires:"]
    lines += [f"  - {env_name} (empty or not set)" for env_name in missing]
    print("\n".join(lines), file=sys.stderr)
    sys.exit(1)
