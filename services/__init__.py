"""
============================================================================
Accrual Keeper - Services Layer
============================================================================

Configuration, the health reporter and the reconciliation loop that
sequences the keeper components.

Reliability Level: L6 Critical
============================================================================
"""

from services.keeper_config import (
    KeeperConfig,
    KeeperConfigurationError,
    get_keeper_config,
    reset_keeper_config,
)

from services.health_reporter import (
    HealthReporter,
    HealthState,
    HealthStatus,
)

from services.reconciliation_loop import (
    ReconciliationLoop,
    TickOutcome,
    TickResult,
)

__all__ = [
    "KeeperConfig",
    "KeeperConfigurationError",
    "get_keeper_config",
    "reset_keeper_config",
    "HealthReporter",
    "HealthState",
    "HealthStatus",
    "ReconciliationLoop",
    "TickOutcome",
    "TickResult",
]
