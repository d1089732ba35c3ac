"""
Accrual index arithmetic.

The global index is scaled by INDEX_SCALE and represents cumulative reward per
unit of supply. A holder's share between two index values is
    balance * (index_now - index_then) // INDEX_SCALE
so settlement is O(1) per holder and nobody iterates over holders.

All arithmetic is integer; Python ints do not overflow, so the u128 range is
checked explicitly where the ledger would reject the value.
"""

from typing import Optional

INDEX_SCALE = 10**12

U128_MAX = 2**128 - 1


class AccrualMathError(ValueError):
    """Raised when an index computation would be rejected by the ledger."""
    pass


def index_delta(amount: int, supply: int) -> int:
    """Index increase for distributing `amount` over `supply` units."""
    if supply <= 0:
        raise AccrualMathError("supply must be positive to compute an index delta")
    if amount < 0:
        raise AccrualMathError("amount must be non-negative")
    return (amount * INDEX_SCALE) // supply


def projected_index(global_index: int, amount: int, supply: int) -> int:
    """Global index after a distribution of `amount` lands."""
    projected = global_index + index_delta(amount, supply)
    if projected > U128_MAX:
        raise AccrualMathError(f"projected index overflows u128: {projected}")
    return projected


def compute_claimable(
    global_index: int,
    user_index: int,
    pending_rewards: int,
    token_balance: int,
) -> int:
    """
    Amount an identity could claim right now.

    A user index at or above the global index means nothing new has accrued
    since the last settle; only pending rewards are claimable.
    """
    if global_index <= user_index:
        return pending_rewards
    earned = (token_balance * (global_index - user_index)) // INDEX_SCALE
    return pending_rewards + earned


def describe_distribution(amount: int, supply: Optional[int], global_index: int) -> str:
    # Only for logs; never raises.
    if not supply or supply <= 0:
        return f"amount={amount} | supply=unknown"
    try:
        delta = index_delta(amount, supply)
        return (
            f"amount={amount} | supply={supply} | index_delta={delta} | "
            f"projected_index={projected_index(global_index, amount, supply)}"
        )
    except AccrualMathError as e:
        return f"amount={amount} | supply={supply} | projection_error={e}"


__all__ = [
    "INDEX_SCALE",
    "AccrualMathError",
    "index_delta",
    "projected_index",
    "compute_claimable",
    "describe_distribution",
]
