"""
Shared test fixtures for the accrual keeper.

Account byte builders mirror the on-ledger layouts decoded by
keeper.schemas.ledger_state.
"""

import base64
import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

GLOBAL_LAYOUT = struct.Struct("<8s32s32sBqQQ32s32sQQQqB")
USER_LAYOUT = struct.Struct("<8s32sQQQB")

U64_MASK = 2**64 - 1


def pack_global_state(
    paused: bool = False,
    last_update_ts: int = 1_700_000_000,
    global_index: int = 0,
    max_per_period: int = 5_000_000,
    max_per_window: int = 100_000_000,
    distributed_this_window: int = 0,
    window_start_ts: int = 1_700_000_000,
    reward_vault: bytes = b"\x07" * 32,
    bump: int = 254,
) -> bytes:
    return GLOBAL_LAYOUT.pack(
        b"GLOBALST",
        b"\x01" * 32,
        b"\x02" * 32,
        1 if paused else 0,
        last_update_ts,
        global_index & U64_MASK,
        global_index >> 64,
        b"\x03" * 32,
        reward_vault,
        max_per_period,
        max_per_window,
        distributed_this_window,
        window_start_ts,
        bump,
    )


def pack_user_state(
    owner: bytes = b"\x09" * 32,
    user_index: int = 0,
    pending_rewards: int = 0,
    bump: int = 253,
) -> bytes:
    return USER_LAYOUT.pack(
        b"USERSTAT",
        owner,
        user_index & U64_MASK,
        user_index >> 64,
        pending_rewards,
        bump,
    )


def account_info_result(data: bytes) -> dict:
    return {
        "context": {"slot": 1},
        "value": {
            "data": [base64.b64encode(data).decode("ascii"), "base64"],
            "executable": False,
            "lamports": 1_000_000,
        },
    }


@pytest.fixture
def global_state_bytes():
    """Factory for global state account bytes."""
    return pack_global_state


@pytest.fixture
def user_state_bytes():
    """Factory for user state account bytes."""
    return pack_user_state


@pytest.fixture
def account_info():
    """Factory for a getAccountInfo result wrapping account bytes."""
    return account_info_result
