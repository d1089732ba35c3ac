"""
Unit Tests for the Guardrail Clamp

Reliability Level: SOVEREIGN TIER

Each local bound is exercised on its own, in the order the clamp
applies them.
"""

import os

import pytest

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from keeper.logic.advisor import AdvisoryContext, build_fallback_recommendation
from keeper.logic.guardrail import (
    REASON_APPROVED,
    REASON_CAPPED_TO_ZERO,
    REASON_INSUFFICIENT_VAULT,
    REASON_NOT_DISTRIBUTE,
    REASON_PAUSE_REQUESTED,
    clamp,
)
from keeper.schemas.ledger_state import GlobalAccrualState
from keeper.schemas.recommendation import Recommendation, RecommendationAction


def make_state(max_per_period=1_000_000, max_per_window=100_000_000, distributed=90_000_000):
    return GlobalAccrualState(
        paused=False,
        last_update_ts=0,
        global_index=0,
        max_per_period=max_per_period,
        max_per_window=max_per_window,
        distributed_this_window=distributed,
        window_start_ts=0,
    )


def rec(action=RecommendationAction.DISTRIBUTE, amount=5_000_000):
    return Recommendation(action=action, amount=amount, confidence=0.7, reason="r")


class TestClamp:

    def test_period_cap_scenario(self) -> None:
        # remaining window 10,000,000; vault 10,000,000
        decision = clamp(rec(amount=5_000_000), make_state(), vault_balance=10_000_000)

        assert decision.proceed is True
        assert decision.amount == 1_000_000
        assert decision.reason == REASON_APPROVED

    def test_oversized_advice_capped_by_period(self) -> None:
        decision = clamp(rec(amount=2**64), make_state(), vault_balance=10_000_000)

        assert decision.proceed is True
        assert decision.amount == 1_000_000

    def test_remaining_window_bound(self) -> None:
        state = make_state(max_per_period=5_000_000, distributed=99_000_000)
        decision = clamp(rec(amount=5_000_000), state, vault_balance=10_000_000)
        assert decision.amount == 1_000_000

    def test_exhausted_window_is_no_go(self) -> None:
        state = make_state(distributed=100_000_000)
        decision = clamp(rec(), state, vault_balance=10_000_000)

        assert decision.proceed is False
        assert decision.reason == REASON_CAPPED_TO_ZERO

    def test_zero_period_cap_is_no_go(self) -> None:
        decision = clamp(rec(), make_state(max_per_period=0), vault_balance=10_000_000)
        assert decision.reason == REASON_CAPPED_TO_ZERO

    def test_vault_shortfall_is_no_go_not_reduced(self) -> None:
        decision = clamp(rec(), make_state(), vault_balance=999_999)

        assert decision.proceed is False
        assert decision.amount == 0
        assert decision.reason == REASON_INSUFFICIENT_VAULT

    def test_zero_amount_is_no_go(self) -> None:
        decision = clamp(rec(amount=0), make_state(), vault_balance=10_000_000)
        assert decision.proceed is False

    @pytest.mark.parametrize("action,reason", [
        (RecommendationAction.HOLD, REASON_NOT_DISTRIBUTE),
        (RecommendationAction.PAUSE, REASON_PAUSE_REQUESTED),
    ])
    def test_non_distribute_is_no_go(self, action, reason) -> None:
        decision = clamp(rec(action=action), make_state(), vault_balance=10**12)

        assert decision.proceed is False
        assert decision.reason == reason


class TestFallbackScenarios:

    def _context(self, vault_balance, distributed):
        return AdvisoryContext(
            current_index=0,
            vault_balance=vault_balance,
            distributed_this_window=distributed,
            max_per_period=5_000_000,
            max_per_window=100_000_000,
            last_update_ts=0,
        )

    def test_runway_hold(self) -> None:
        fallback = build_fallback_recommendation(self._context(1_000_000, 0), 1_000_000)
        assert fallback.action == RecommendationAction.HOLD

    def test_window_cap_hold(self) -> None:
        fallback = build_fallback_recommendation(self._context(10_000_000, 99_500_000), 1_000_000)
        assert fallback.action == RecommendationAction.HOLD

    def test_fallback_then_clamp_end_to_end(self) -> None:
        fallback = build_fallback_recommendation(self._context(10_000_000, 0), 1_000_000)
        decision = clamp(fallback, make_state(distributed=0), vault_balance=10_000_000)

        assert decision.proceed is True
        assert decision.amount == 1_000_000
