"""
============================================================================
Property-Based Tests for the Guardrail Clamp
============================================================================

Reliability Level: SOVEREIGN TIER

Properties tested:
- A go decision's amount never exceeds the recommended amount, the
  per-period cap, the remaining window budget or the vault balance
- A go decision's amount is always positive
- Only DISTRIBUTE can ever produce a go decision
- The clamp is deterministic

============================================================================
"""

import os

from hypothesis import given, settings
from hypothesis import strategies as st

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from keeper.logic.guardrail import REASON_APPROVED, clamp
from keeper.schemas.ledger_state import GlobalAccrualState
from keeper.schemas.recommendation import Recommendation, RecommendationAction


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

u64 = st.integers(min_value=0, max_value=2**64 - 1)
small = st.integers(min_value=0, max_value=10**9)
amounts = st.one_of(small, u64)

action_strategy = st.sampled_from(list(RecommendationAction))


@st.composite
def state_strategy(draw):
    max_per_window = draw(amounts)
    distributed = draw(st.integers(min_value=0, max_value=max_per_window))
    return GlobalAccrualState(
        paused=False,
        last_update_ts=0,
        global_index=draw(st.integers(min_value=0, max_value=2**128 - 1)),
        max_per_period=draw(amounts),
        max_per_window=max_per_window,
        distributed_this_window=distributed,
        window_start_ts=0,
    )


@st.composite
def recommendation_strategy(draw):
    return Recommendation(
        action=draw(action_strategy),
        amount=draw(st.one_of(amounts, st.integers(min_value=2**64, max_value=2**80))),
        confidence=draw(st.floats(min_value=0.0, max_value=1.0)),
        reason=draw(st.text(max_size=50)),
    )


# =============================================================================
# PROPERTIES
# =============================================================================

@settings(max_examples=300)
@given(rec=recommendation_strategy(), state=state_strategy(), vault_balance=amounts)
def test_go_amount_within_every_bound(rec, state, vault_balance) -> None:
    decision = clamp(rec, state, vault_balance)

    if decision.proceed:
        assert decision.reason == REASON_APPROVED
        assert 0 < decision.amount
        assert decision.amount <= rec.amount
        assert decision.amount <= state.max_per_period
        assert decision.amount <= state.max_per_window - state.distributed_this_window
        assert decision.amount <= vault_balance
    else:
        assert decision.amount == 0


@settings(max_examples=200)
@given(rec=recommendation_strategy(), state=state_strategy(), vault_balance=amounts)
def test_only_distribute_proceeds(rec, state, vault_balance) -> None:
    decision = clamp(rec, state, vault_balance)
    if rec.action != RecommendationAction.DISTRIBUTE:
        assert decision.proceed is False


@settings(max_examples=200)
@given(rec=recommendation_strategy(), state=state_strategy(), vault_balance=amounts)
def test_clamp_is_deterministic(rec, state, vault_balance) -> None:
    assert clamp(rec, state, vault_balance) == clamp(rec, state, vault_balance)


@settings(max_examples=200)
@given(state=state_strategy(), amount=st.integers(min_value=1, max_value=10**9))
def test_unconstrained_distribute_passes_amount_through(state, amount) -> None:
    roomy = GlobalAccrualState(
        paused=False,
        last_update_ts=0,
        global_index=state.global_index,
        max_per_period=amount,
        max_per_window=amount,
        distributed_this_window=0,
        window_start_ts=0,
    )
    rec = Recommendation(
        action=RecommendationAction.DISTRIBUTE, amount=amount, confidence=0.5, reason="x"
    )

    decision = clamp(rec, roomy, vault_balance=amount)

    assert decision.proceed is True
    assert decision.amount == amount
