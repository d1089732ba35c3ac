"""
Unit Tests for the Claimable CLI

Tests the read-only operator tool with a mocked ledger client.
"""

import os
from unittest.mock import MagicMock

import pytest

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from keeper.ledger import AccountNotFoundError
from keeper.logic.accrual import INDEX_SCALE
from keeper.schemas.ledger_state import GlobalAccrualState, UserAccrualState
from scripts.claimable import main
from services.keeper_config import get_keeper_config, reset_keeper_config


@pytest.fixture
def ledger():
    client = MagicMock()
    client.read_global_state.return_value = GlobalAccrualState(
        paused=False,
        last_update_ts=1_700_000_000,
        global_index=INDEX_SCALE,
        max_per_period=5_000_000,
        max_per_window=100_000_000,
        distributed_this_window=3_000_000,
        window_start_ts=1_699_990_000,
        reward_vault="cd" * 32,
    )
    client.read_user_state.return_value = UserAccrualState(
        owner="ef" * 32,
        user_index=INDEX_SCALE // 2,
        pending_rewards=10,
    )
    client.read_balance.return_value = 1_000
    return client


class TestClaimableCli:

    def test_requires_a_mode(self, ledger) -> None:
        assert main([], client=ledger) == 2

    def test_owner_requires_balance_source(self, ledger) -> None:
        assert main(["--owner", "alice"], client=ledger) == 2

    def test_prints_state(self, ledger, capsys) -> None:
        assert main(["--state"], client=ledger) == 0

        out = capsys.readouterr().out
        assert "GLOBAL ACCRUAL STATE" in out
        assert str(INDEX_SCALE) in out
        ledger.close.assert_called_once()

    def test_claimable_with_token_account(self, ledger, capsys) -> None:
        assert main(["--owner", "alice", "--token-account", "acct"], client=ledger) == 0

        ledger.read_user_state.assert_called_once_with("alice")
        ledger.read_balance.assert_called_once_with("acct")
        # 10 pending + 1000 * 0.5
        assert "Claimable:       510" in capsys.readouterr().out

    def test_claimable_with_explicit_balance(self, ledger, capsys) -> None:
        assert main(["--owner", "alice", "--balance", "2000"], client=ledger) == 0

        ledger.read_balance.assert_not_called()
        assert "Claimable:       1010" in capsys.readouterr().out

    def test_ledger_failure_exits_1(self, ledger, capsys) -> None:
        ledger.read_user_state.side_effect = AccountNotFoundError("KPR-LED-003: missing")

        assert main(["--owner", "alice", "--balance", "1"], client=ledger) == 1
        assert "[FAILED]" in capsys.readouterr().out


class TestClaimableConfig:

    @pytest.fixture(autouse=True)
    def fresh_config(self):
        reset_keeper_config()
        yield
        reset_keeper_config()

    def test_missing_program_id_exits_2(self, monkeypatch, capsys) -> None:
        monkeypatch.delenv("PROGRAM_ID", raising=False)
        monkeypatch.setenv("DISTRIBUTION_MINT", "Mint111")

        assert main(["--state"]) == 2
        assert "PROGRAM_ID" in capsys.readouterr().out

    def test_uses_shared_config_instance(self, monkeypatch) -> None:
        monkeypatch.setenv("PROGRAM_ID", "Program111")
        monkeypatch.setenv("DISTRIBUTION_MINT", "Mint111")
        config = get_keeper_config(validate=False)
        config.program_id = ""

        # The CLI reads the process-wide instance, not the environment
        assert main(["--state"]) == 2
