"""
============================================================================
Accrual Keeper v1.0.0
Ledger Account Layouts - Global and Per-Identity Accrual State
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Raw account bytes from the ledger (little-endian)
Side Effects: None (pure decoding)

ACCOUNT LAYOUTS
---------------
GlobalAccrualState (194 bytes):
    discriminator(8) admin(32) keeper(32) paused(u8) last_update_ts(i64)
    global_index(u128) funding_mint(32) reward_vault(32)
    max_per_period(u64) max_per_window(u64) distributed_this_window(u64)
    window_start_ts(i64) bump(u8)

UserAccrualState (65 bytes):
    discriminator(8) owner(32) user_index(u128) pending_rewards(u64) bump(u8)

Keys are rendered as lowercase hex. Derived addresses are SHA-256 digests of
the seeds plus the program id, so every party computes the same address for
a (namespace, identity) pair without a lookup.

============================================================================
"""

import hashlib
import struct
from dataclasses import dataclass, replace
from typing import Optional


# ============================================================================
# CONSTANTS
# ============================================================================

NAMESPACE_GLOBAL_STATE = "global_state"
NAMESPACE_USER_STATE = "user_state"

ADDRESS_MARKER = b"DerivedAddress"

_GLOBAL_LAYOUT = struct.Struct("<8s32s32sBqQQ32s32sQQQqB")
_USER_LAYOUT = struct.Struct("<8s32sQQQB")

GLOBAL_STATE_LEN = _GLOBAL_LAYOUT.size  # 194
USER_STATE_LEN = _USER_LAYOUT.size      # 65


class AccountDecodeError(ValueError):
    """Raised when account bytes do not match the expected layout."""
    pass


def _u128(lo: int, hi: int) -> int:
    return (hi << 64) | lo


def derive_address(program_id: str, namespace: str, identity: Optional[str] = None) -> str:
    """
    Derive the deterministic address of a ledger account.

    Args:
        program_id: Target program / namespace identifier
        namespace: Seed label, e.g. "global_state" or "user_state"
        identity: Optional identity key for per-identity accounts

    Returns:
        64-char lowercase hex address
    """
    if not program_id:
        raise ValueError("program_id is required to derive an address")
    if not namespace:
        raise ValueError("namespace is required to derive an address")

    digest = hashlib.sha256()
    digest.update(namespace.encode("utf-8"))
    if identity:
        digest.update(identity.encode("utf-8"))
    digest.update(program_id.encode("utf-8"))
    digest.update(ADDRESS_MARKER)
    return digest.hexdigest()


# ============================================================================
# GLOBAL STATE
# ============================================================================

@dataclass(frozen=True)
class GlobalAccrualState:
    """
    Authoritative global accrual state, as last read from the ledger.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Read-only snapshot; the ledger owns the real thing
    Side Effects: None

    Invariants (enforced by the ledger, relied on here):
        - distributed_this_window <= max_per_window
        - global_index never decreases
        - the window is rolling from window_start_ts, not a calendar day
    """
    paused: bool
    last_update_ts: int
    global_index: int
    max_per_period: int
    max_per_window: int
    distributed_this_window: int
    window_start_ts: int
    admin: str = ""
    keeper: str = ""
    funding_mint: str = ""
    reward_vault: str = ""
    bump: int = 0

    @classmethod
    def decode(cls, data: bytes) -> "GlobalAccrualState":
        """
        Decode raw global state account bytes.

        Raises:
            AccountDecodeError: If the buffer is shorter than the layout
        """
        if len(data) < GLOBAL_STATE_LEN:
            raise AccountDecodeError(
                f"global state account too short: {len(data)} < {GLOBAL_STATE_LEN} bytes"
            )
        (
            _discriminator,
            admin,
            keeper,
            paused,
            last_update_ts,
            index_lo,
            index_hi,
            funding_mint,
            reward_vault,
            max_per_period,
            max_per_window,
            distributed,
            window_start_ts,
            bump,
        ) = _GLOBAL_LAYOUT.unpack_from(data)

        return cls(
            paused=paused != 0,
            last_update_ts=last_update_ts,
            global_index=_u128(index_lo, index_hi),
            max_per_period=max_per_period,
            max_per_window=max_per_window,
            distributed_this_window=distributed,
            window_start_ts=window_start_ts,
            admin=admin.hex(),
            keeper=keeper.hex(),
            funding_mint=funding_mint.hex(),
            reward_vault=reward_vault.hex(),
            bump=bump,
        )

    @property
    def remaining_window_budget(self) -> int:
        """Amount still distributable in the current window (may be <= 0)."""
        return self.max_per_window - self.distributed_this_window

    def seconds_since_update(self, now: int) -> int:
        return now - self.last_update_ts

    def rolled(self, now: int, window_seconds: int) -> "GlobalAccrualState":
        """
        Return the state as the ledger will account for it at `now`.

        The ledger resets the window counter lazily, on the first update after
        the window has elapsed. Until that update lands the stored counter is
        stale, so decisions are made against the rolled view.
        """
        if now - self.window_start_ts >= window_seconds:
            return replace(self, distributed_this_window=0, window_start_ts=now)
        return self

    def to_log(self) -> str:
        return (
            f"paused={self.paused} | last_update_ts={self.last_update_ts} | "
            f"global_index={self.global_index} | max_per_period={self.max_per_period} | "
            f"max_per_window={self.max_per_window} | "
            f"distributed_this_window={self.distributed_this_window} | "
            f"window_start_ts={self.window_start_ts}"
        )


# ============================================================================
# PER-IDENTITY STATE
# ============================================================================

@dataclass(frozen=True)
class UserAccrualState:
    """Per-identity accrual snapshot: index at last settle plus unpaid rewards."""
    owner: str
    user_index: int
    pending_rewards: int
    bump: int = 0

    @classmethod
    def decode(cls, data: bytes) -> "UserAccrualState":
        if len(data) < USER_STATE_LEN:
            raise AccountDecodeError(
                f"user state account too short: {len(data)} < {USER_STATE_LEN} bytes"
            )
        _discriminator, owner, index_lo, index_hi, pending, bump = _USER_LAYOUT.unpack_from(data)
        return cls(
            owner=owner.hex(),
            user_index=_u128(index_lo, index_hi),
            pending_rewards=pending,
            bump=bump,
        )


__all__ = [
    "NAMESPACE_GLOBAL_STATE",
    "NAMESPACE_USER_STATE",
    "GLOBAL_STATE_LEN",
    "USER_STATE_LEN",
    "AccountDecodeError",
    "derive_address",
    "GlobalAccrualState",
    "UserAccrualState",
]
