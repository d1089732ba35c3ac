"""
============================================================================
Accrual Keeper - Configuration
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Configuration is logged on load with secrets excluded

PRIME DIRECTIVE:
    "The advisor suggests. The guardrail decides. The ledger enforces."

This module provides configuration management for the keeper:
- Environment variable parsing with type safety
- Default values for optional configuration
- Validation of required configuration
- Fail-closed behavior on missing required config (KPR-CFG-001)

ENVIRONMENT VARIABLES:
    - RPC_URL: Ledger JSON-RPC endpoint (default: http://127.0.0.1:8899)
    - KEEPER_KEY_ID: Keeper signing key identifier (REQUIRED)
    - KEEPER_SECRET: Keeper signing secret (REQUIRED)
    - PROGRAM_ID: Target program / namespace identifier (REQUIRED)
    - DISTRIBUTION_MINT: Supply token for the index (REQUIRED)
    - ADVISOR_API_KEY: Advisory credential (optional; unset = fallback only)
    - ADVISOR_API_URL: Advisory base URL (default: https://api.x.ai/v1)
    - ADVISOR_MODEL: Advisory model name (default: grok-2-latest)
    - ADVISOR_TIMEOUT_SECONDS: Hard advisory timeout (default: 10)
    - HEALTH_PORT: Status endpoint port (default: 3001)
    - DRY_RUN: Log-only submissions (default: false)
    - DEFAULT_DISTRIBUTE_AMOUNT: Fallback amount in minor units (default: 1000000)
    - TICK_PERIOD_SECONDS: Cadence and minimum update interval (default: 60)
    - WINDOW_SECONDS: Rolling window length (default: 86400)
    - MAX_RETRIES: Submission attempts per tick (default: 3)
    - RETRY_DELAY_SECONDS: Linear backoff unit (default: 5)

ERROR CODES:
    - KPR-CFG-001: Required configuration missing or invalid

============================================================================
"""

from typing import Optional, List
from dataclasses import dataclass
import logging
import os

from keeper.logic.advisor import (
    DEFAULT_ADVISOR_URL,
    DEFAULT_ADVISOR_MODEL,
    DEFAULT_ADVISOR_TIMEOUT_SECONDS,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class KeeperConfigErrorCode:
    """Keeper configuration error codes for audit logging."""
    CONFIG_MISSING = "KPR-CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_RPC_URL = "http://127.0.0.1:8899"
DEFAULT_HEALTH_PORT = 3001
DEFAULT_DRY_RUN = False

# 1 token at 6 decimals
DEFAULT_DISTRIBUTE_AMOUNT = 1_000_000

DEFAULT_TICK_PERIOD_SECONDS = 60
DEFAULT_WINDOW_SECONDS = 86_400
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 5.0

TRUE_VALUES = ("true", "1", "yes", "on")


# =============================================================================
# Configuration Validation Exception
# =============================================================================

class KeeperConfigurationError(Exception):
    """
    Exception raised when keeper configuration is invalid or missing.

    Raised during startup, before the first tick is scheduled.

    Reliability Level: SOVEREIGN TIER
    """

    def __init__(self, message: str, error_code: str = KeeperConfigErrorCode.CONFIG_MISSING):
        """
        Args:
            message: Human-readable error message
            error_code: Sovereign error code (default: KPR-CFG-001)
        """
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# Parsing Helpers
# =============================================================================

def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.lower().strip() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[KEEPER-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(
            f"[KEEPER-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


# =============================================================================
# KeeperConfig Class
# =============================================================================

@dataclass
class KeeperConfig:
    """
    Keeper configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - rpc_url / program_id / distribution_mint: ledger addressing
    - keeper_key_id / keeper_secret: signing credentials (REQUIRED)
    - advisor_*: advisory source (optional)
    - tick_period_seconds / window_seconds: cadence and rolling window
    - max_retries / retry_delay_seconds: submission retry policy
    - dry_run: log-only submissions
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: Required fields non-empty; numerics positive
    Side Effects: Logs configuration on load (secret-free)
    """

    keeper_key_id: str = ""
    keeper_secret: str = ""
    program_id: str = ""
    distribution_mint: str = ""
    rpc_url: str = DEFAULT_RPC_URL

    advisor_api_key: Optional[str] = None
    advisor_api_url: str = DEFAULT_ADVISOR_URL
    advisor_model: str = DEFAULT_ADVISOR_MODEL
    advisor_timeout_seconds: float = DEFAULT_ADVISOR_TIMEOUT_SECONDS

    health_port: int = DEFAULT_HEALTH_PORT
    dry_run: bool = DEFAULT_DRY_RUN
    default_distribute_amount: int = DEFAULT_DISTRIBUTE_AMOUNT

    tick_period_seconds: int = DEFAULT_TICK_PERIOD_SECONDS
    window_seconds: int = DEFAULT_WINDOW_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS

    @property
    def advisor_configured(self) -> bool:
        return bool(self.advisor_api_key)

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises KeeperConfigurationError (KPR-CFG-001) if required configuration
        is missing or invalid.

        Reliability Level: SOVEREIGN TIER
        Side Effects: Logs validation results
        """
        errors: List[str] = []

        for env_name, value in (
            ("KEEPER_KEY_ID", self.keeper_key_id),
            ("KEEPER_SECRET", self.keeper_secret),
            ("PROGRAM_ID", self.program_id),
            ("DISTRIBUTION_MINT", self.distribution_mint),
            ("RPC_URL", self.rpc_url),
        ):
            if not value:
                errors.append(f"{env_name} must be set")

        for env_name, number in (
            ("DEFAULT_DISTRIBUTE_AMOUNT", self.default_distribute_amount),
            ("TICK_PERIOD_SECONDS", self.tick_period_seconds),
            ("WINDOW_SECONDS", self.window_seconds),
            ("MAX_RETRIES", self.max_retries),
            ("ADVISOR_TIMEOUT_SECONDS", self.advisor_timeout_seconds),
        ):
            if number <= 0:
                errors.append(f"{env_name} must be positive, got: {number}")

        if self.retry_delay_seconds < 0:
            errors.append(
                f"RETRY_DELAY_SECONDS must be non-negative, got: {self.retry_delay_seconds}"
            )

        if not 0 < self.health_port < 65536:
            errors.append(f"HEALTH_PORT must be in 1-65535, got: {self.health_port}")

        if errors:
            error_msg = "Keeper configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{KeeperConfigErrorCode.CONFIG_MISSING}] {error_msg}")
            raise KeeperConfigurationError(error_msg)

        if not self.advisor_configured:
            logger.warning(
                "[KEEPER-CONFIG] ADVISOR_API_KEY not set | "
                "advisory disabled, deterministic fallback strategy only"
            )

        logger.info(
            f"[KEEPER-CONFIG] Configuration validated | "
            f"rpc_url={self.rpc_url} | program_id={self.program_id} | "
            f"dry_run={self.dry_run} | tick_period_seconds={self.tick_period_seconds} | "
            f"max_retries={self.max_retries}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "KeeperConfig":
        """
        Load configuration from environment variables.

        Args:
            validate: Whether to validate configuration after loading (default: True)

        Returns:
            KeeperConfig instance with values from environment

        Raises:
            KeeperConfigurationError: If required configuration is missing (KPR-CFG-001)
        """
        config = cls(
            keeper_key_id=_env_str("KEEPER_KEY_ID", ""),
            keeper_secret=_env_str("KEEPER_SECRET", ""),
            program_id=_env_str("PROGRAM_ID", ""),
            distribution_mint=_env_str("DISTRIBUTION_MINT", ""),
            rpc_url=_env_str("RPC_URL", DEFAULT_RPC_URL),
            advisor_api_key=_env_str("ADVISOR_API_KEY"),
            advisor_api_url=_env_str("ADVISOR_API_URL", DEFAULT_ADVISOR_URL),
            advisor_model=_env_str("ADVISOR_MODEL", DEFAULT_ADVISOR_MODEL),
            advisor_timeout_seconds=_env_float(
                "ADVISOR_TIMEOUT_SECONDS", DEFAULT_ADVISOR_TIMEOUT_SECONDS
            ),
            health_port=_env_int("HEALTH_PORT", DEFAULT_HEALTH_PORT),
            dry_run=_env_bool("DRY_RUN", DEFAULT_DRY_RUN),
            default_distribute_amount=_env_int(
                "DEFAULT_DISTRIBUTE_AMOUNT", DEFAULT_DISTRIBUTE_AMOUNT
            ),
            tick_period_seconds=_env_int("TICK_PERIOD_SECONDS", DEFAULT_TICK_PERIOD_SECONDS),
            window_seconds=_env_int("WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS),
            max_retries=_env_int("MAX_RETRIES", DEFAULT_MAX_RETRIES),
            retry_delay_seconds=_env_float("RETRY_DELAY_SECONDS", DEFAULT_RETRY_DELAY_SECONDS),
        )

        logger.info(
            f"[KEEPER-CONFIG] Loading configuration from environment | "
            f"{' | '.join(f'{k}={v}' for k, v in config.to_dict().items())}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """
        Convert configuration to dictionary for logging. Secrets are excluded.
        """
        return {
            "rpc_url": self.rpc_url,
            "program_id": self.program_id,
            "distribution_mint": self.distribution_mint,
            "keeper_key_id_set": bool(self.keeper_key_id),
            "keeper_secret_set": bool(self.keeper_secret),
            "advisor_configured": self.advisor_configured,
            "advisor_api_url": self.advisor_api_url,
            "advisor_model": self.advisor_model,
            "advisor_timeout_seconds": self.advisor_timeout_seconds,
            "health_port": self.health_port,
            "dry_run": self.dry_run,
            "default_distribute_amount": self.default_distribute_amount,
            "tick_period_seconds": self.tick_period_seconds,
            "window_seconds": self.window_seconds,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[KeeperConfig] = None


def get_keeper_config(validate: bool = True) -> KeeperConfig:
    """
    Get the global keeper configuration instance, loading it from the
    environment on first access.

    Raises:
        KeeperConfigurationError: If required configuration is missing (KPR-CFG-001)
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = KeeperConfig.from_environment(validate=validate)

    return _config_instance


def reset_keeper_config() -> None:
    """Reset the global configuration instance (tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[KEEPER-CONFIG] Configuration instance reset")
