"""
Unit Tests for the Ledger Client and Request Signer

Reliability Level: SOVEREIGN TIER

Tests:
- Reads decode accounts and balances from JSON-RPC results
- Missing accounts and malformed results raise typed errors
- Transport faults map to LedgerTransportError
- Dry run never touches the network
- Live submissions are signed and return the receipt
- Signer fails closed on missing credentials and never leaks the secret
"""

import hashlib
import hmac
import json
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
import requests

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from keeper.ledger import (
    AccountNotFoundError,
    LedgerClient,
    LedgerClientError,
    LedgerRPCError,
    LedgerSigner,
    LedgerSignerError,
    LedgerTransportError,
    MissingCredentialsError,
    SubmissionContext,
)
from keeper.ledger.signer import parse_secret
from keeper.schemas.ledger_state import derive_address


# =============================================================================
# Helpers
# =============================================================================

def rpc_response(result=None, error=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = "body"
    payload = {"jsonrpc": "2.0", "id": 1}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    response.json.return_value = payload
    return response


def make_client(session, signer=None):
    return LedgerClient(
        rpc_url="http://ledger.test",
        program_id="prog",
        distribution_mint="mint",
        signer=signer,
        session=session,
    )


def sent_body(session, call_index=-1):
    return json.loads(session.post.call_args_list[call_index].kwargs["data"])


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    def test_read_global_state(self, global_state_bytes, account_info) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(
            account_info(global_state_bytes(global_index=99, max_per_period=123))
        )
        client = make_client(session)

        state = client.read_global_state()

        assert state.global_index == 99
        assert state.max_per_period == 123
        body = sent_body(session)
        assert body["method"] == "getAccountInfo"
        assert body["params"] == [derive_address("prog", "global_state"), {"encoding": "base64"}]

    def test_missing_account(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response({"context": {"slot": 1}, "value": None})

        with pytest.raises(AccountNotFoundError):
            make_client(session).read_global_state()

    def test_undecodable_account(self, account_info) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(account_info(b"\x00" * 12))

        with pytest.raises(LedgerClientError):
            make_client(session).read_global_state()

    def test_read_balance(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(
            {"value": {"amount": "250000000", "decimals": 6, "uiAmount": 250.0}}
        )

        assert make_client(session).read_balance("vault-address") == 250_000_000
        body = sent_body(session)
        assert body["method"] == "getTokenAccountBalance"
        assert body["params"] == ["vault-address"]

    def test_read_supply_defaults_to_distribution_mint(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response({"value": {"amount": "1000"}})

        assert make_client(session).read_supply() == 1000
        assert sent_body(session)["params"] == ["mint"]

    def test_malformed_amount(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response({"value": {"amount": "lots"}})

        with pytest.raises(LedgerClientError):
            make_client(session).read_balance("vault")

    def test_read_user_state_uses_derived_address(self, user_state_bytes, account_info) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(
            account_info(user_state_bytes(user_index=5, pending_rewards=17))
        )

        user = make_client(session).read_user_state("alice")

        assert user.user_index == 5
        assert user.pending_rewards == 17
        assert sent_body(session)["params"][0] == derive_address("prog", "user_state", "alice")


# =============================================================================
# Transport Errors
# =============================================================================

class TestTransportErrors:

    @pytest.mark.parametrize("exc", [
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("down"),
    ])
    def test_request_exceptions(self, exc) -> None:
        session = MagicMock()
        session.post.side_effect = exc

        with pytest.raises(LedgerTransportError):
            make_client(session).read_balance("vault")

    def test_http_status(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(status_code=502)

        with pytest.raises(LedgerTransportError):
            make_client(session).read_balance("vault")

    def test_rpc_error_keeps_remote_reason(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(
            error={"code": 6002, "message": "ExceedsMinuteCap"}
        )

        with pytest.raises(LedgerRPCError) as exc_info:
            make_client(session).read_balance("vault")

        assert exc_info.value.code == 6002
        assert exc_info.value.remote_message == "ExceedsMinuteCap"

    def test_non_json_body(self) -> None:
        session = MagicMock()
        response = rpc_response()
        response.json.side_effect = ValueError("no json")
        session.post.return_value = response

        with pytest.raises(LedgerClientError):
            make_client(session).read_balance("vault")


# =============================================================================
# Submission
# =============================================================================

class TestSubmitDistribution:

    def test_dry_run_makes_no_request(self) -> None:
        session = MagicMock()
        client = make_client(session)

        receipt = client.submit_distribution(
            1_000_000,
            SubmissionContext(correlation_id="T1", global_index=0, token_supply=10**9),
            dry_run=True,
        )

        assert receipt is None
        session.post.assert_not_called()

    def test_live_submission_is_signed(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response("receipt-abc")
        signer = LedgerSigner("keeper-key-0001", "secret")
        client = make_client(session, signer=signer)

        receipt = client.submit_distribution(500, SubmissionContext(correlation_id="T1"))

        assert receipt == "receipt-abc"
        kwargs = session.post.call_args.kwargs
        headers = kwargs["headers"]
        assert headers[LedgerSigner.HEADER_KEY] == "keeper-key-0001"

        expected = hmac.new(
            b"secret",
            f"{headers[LedgerSigner.HEADER_TIMESTAMP]}advanceIndex{kwargs['data']}".encode(),
            hashlib.sha256,
        ).hexdigest()
        assert headers[LedgerSigner.HEADER_SIGNATURE] == expected

        params = json.loads(kwargs["data"])["params"][0]
        assert params["amount"] == 500
        assert params["supplyMint"] == "mint"

    def test_live_submission_without_signer_fails(self) -> None:
        session = MagicMock()
        with pytest.raises(LedgerClientError):
            make_client(session).submit_distribution(500)
        session.post.assert_not_called()

    def test_rejection_raises(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response(error={"code": 6001, "message": "TooEarly"})
        client = make_client(session, signer=LedgerSigner("k", "s"))

        with pytest.raises(LedgerRPCError):
            client.submit_distribution(500)

    def test_empty_receipt_rejected(self) -> None:
        session = MagicMock()
        session.post.return_value = rpc_response("")
        client = make_client(session, signer=LedgerSigner("k", "s"))

        with pytest.raises(LedgerClientError):
            client.submit_distribution(500)

    def test_context_manager_closes_session(self) -> None:
        session = MagicMock()
        with make_client(session):
            pass
        session.close.assert_called_once()


class TestSessionPerThread:

    def test_concurrent_reads_use_separate_sessions(self, monkeypatch) -> None:
        created = []

        def new_session():
            session = MagicMock()
            session.post.return_value = rpc_response({"context": {}, "value": {"amount": "7"}})
            created.append(session)
            return session

        monkeypatch.setattr(requests, "Session", new_session)
        client = make_client(session=None)

        with ThreadPoolExecutor(max_workers=2) as pool:
            barrier = threading.Barrier(2)

            def read(account):
                barrier.wait(timeout=5)
                return client.read_balance(account)

            results = list(pool.map(read, ["a", "b"]))

        assert results == [7, 7]
        assert len(created) == 2
        assert all(s.post.call_count == 1 for s in created)

        client.close()
        for session in created:
            session.close.assert_called_once()

    def test_same_thread_reuses_its_session(self, monkeypatch) -> None:
        created = []

        def new_session():
            session = MagicMock()
            session.post.return_value = rpc_response({"context": {}, "value": {"amount": "1"}})
            created.append(session)
            return session

        monkeypatch.setattr(requests, "Session", new_session)
        client = make_client(session=None)

        client.read_balance("a")
        client.read_balance("b")

        assert len(created) == 1
        assert created[0].post.call_count == 2


# =============================================================================
# Signer
# =============================================================================

class TestSigner:

    @pytest.mark.parametrize("key_id,secret", [(None, "s"), ("k", None), ("", "")])
    def test_missing_credentials(self, key_id, secret) -> None:
        with pytest.raises(MissingCredentialsError) as exc_info:
            LedgerSigner(key_id, secret)
        assert "KPR-SEC-001" in str(exc_info.value)

    def test_fixed_timestamp_signature(self) -> None:
        headers = LedgerSigner("key", "secret").sign_request("advanceIndex", "{}", timestamp=1000)

        expected = hmac.new(b"secret", b"1000advanceIndex{}", hashlib.sha256).hexdigest()
        assert headers[LedgerSigner.HEADER_SIGNATURE] == expected
        assert headers[LedgerSigner.HEADER_TIMESTAMP] == "1000"

    def test_byte_array_secret(self) -> None:
        assert parse_secret("[1, 2, 255]") == bytes([1, 2, 255])

    @pytest.mark.parametrize("secret", ["[", "[]", "[256]", "[true]"])
    def test_bad_byte_array_rejected(self, secret) -> None:
        with pytest.raises(LedgerSignerError):
            parse_secret(secret)

    def test_redacted_key(self) -> None:
        assert LedgerSigner("keeper-key-0001", "s").get_redacted_key() == "keep...0001"
        assert LedgerSigner("short", "s").get_redacted_key() == "[REDACTED]"
