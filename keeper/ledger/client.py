# ============================================================================
# Accrual Keeper v1.0.0
# Ledger Client - Synchronous Facade over the Authoritative Store
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Read accrual state and balances; submit advance-index actions
#
# SOVEREIGN MANDATE:
#   - Reads are single requests with no side effects
#   - The only mutating call is submit_distribution()
#   - Dry run performs no network mutation
#   - No retries here: the keeper loop owns the retry policy, so one
#     call to submit_distribution() is at most one mutating request
#
# Transport: JSON-RPC 2.0 over HTTP (requests.Session)
#   getAccountInfo(address, {"encoding": "base64"})
#   getTokenAccountBalance(address)
#   getTokenSupply(mint)
#   advanceIndex({...})            <- signed
#
# Error Codes:
#   - KPR-LED-001: Transport failure (timeout, connection, HTTP status)
#   - KPR-LED-002: Ledger returned a JSON-RPC error
#   - KPR-LED-003: Account not found
#   - KPR-LED-004: Malformed response
#
# ============================================================================

import base64
import binascii
import itertools
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from keeper.ledger.signer import LedgerSigner
from keeper.logic.accrual import describe_distribution
from keeper.schemas.ledger_state import (
    NAMESPACE_GLOBAL_STATE,
    NAMESPACE_USER_STATE,
    AccountDecodeError,
    GlobalAccrualState,
    UserAccrualState,
    derive_address,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

class LedgerClientError(Exception):
    """Base exception for ledger client errors."""
    pass


class LedgerTransportError(LedgerClientError):
    """Raised on timeouts, connection failures and bad HTTP status (KPR-LED-001)."""
    pass


class LedgerRPCError(LedgerClientError):
    """
    Raised when the ledger rejects a call (KPR-LED-002).

    The remote message carries the ledger's own reason, e.g. TooEarly,
    ExceedsMinuteCap, Paused.
    """

    def __init__(self, code: Any, message: str):
        self.code = code
        self.remote_message = message
        super().__init__(f"KPR-LED-002: ledger error {code}: {message}")


class AccountNotFoundError(LedgerClientError):
    """Raised when an account does not exist (KPR-LED-003)."""
    pass


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class SubmissionContext:
    """
    Per-tick context attached to a submission, used for logs and audit.
    """
    correlation_id: Optional[str] = None
    global_index: int = 0
    token_supply: Optional[int] = None


# ============================================================================
# Ledger Client
# ============================================================================

class LedgerClient:
    """
    Ledger Client - Sovereign Tier.

    Reliability Level: SOVEREIGN TIER
    Thread Safety: Reads may run concurrently on executor threads. Each
                   thread gets its own requests.Session, since a Session
                   is not guaranteed thread-safe. An injected session is
                   shared by every thread and must be safe to share.

    Example Usage:
        client = LedgerClient(rpc_url, program_id, mint, signer)
        state = client.read_global_state()
        balance = client.read_balance(state.reward_vault)
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        rpc_url: str,
        program_id: str,
        distribution_mint: str,
        signer: Optional[LedgerSigner] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            rpc_url: Ledger JSON-RPC endpoint
            program_id: Target program / namespace identifier
            distribution_mint: Supply token the index is computed against
            signer: Keeper signer; required for live submissions
            timeout: HTTP request timeout in seconds
            session: Optional pre-built session shared by all threads (tests)
        """
        self.rpc_url = rpc_url
        self.program_id = program_id
        self.distribution_mint = distribution_mint
        self.signer = signer
        self.timeout = timeout
        self._shared_session = session
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._ids = itertools.count(1)

        self.global_state_address = derive_address(program_id, NAMESPACE_GLOBAL_STATE)

        logger.info(
            f"[KEEPER-LEDGER] Client initialized | rpc={rpc_url} | program={program_id} | "
            f"global_state={self.global_state_address} | "
            f"authenticated={signer is not None}"
        )

    # ========================================================================
    # Reads
    # ========================================================================

    def read_global_state(self) -> GlobalAccrualState:
        """
        Read the global accrual state. Single read, no side effects.

        Raises:
            AccountNotFoundError: If the global state account does not exist
            LedgerClientError: On transport or decode failure
        """
        data = self._read_account(self.global_state_address)
        try:
            state = GlobalAccrualState.decode(data)
        except AccountDecodeError as e:
            raise LedgerClientError(f"KPR-LED-004: {e}")

        logger.debug(f"[KEEPER-LEDGER] Global state read | {state.to_log()}")
        return state

    def read_balance(self, account_ref: str) -> int:
        """
        Read a token account balance in minor units. Single read.

        Args:
            account_ref: Token account address (e.g. the reward vault)
        """
        result = self._rpc("getTokenAccountBalance", [account_ref])
        return self._parse_amount(result, "getTokenAccountBalance")

    def read_supply(self, mint: Optional[str] = None) -> int:
        """Read total supply of the distribution token (or another mint)."""
        result = self._rpc("getTokenSupply", [mint or self.distribution_mint])
        return self._parse_amount(result, "getTokenSupply")

    def read_user_state(self, owner: str) -> UserAccrualState:
        """Read one identity's accrual state from its derived address."""
        address = derive_address(self.program_id, NAMESPACE_USER_STATE, owner)
        data = self._read_account(address)
        try:
            return UserAccrualState.decode(data)
        except AccountDecodeError as e:
            raise LedgerClientError(f"KPR-LED-004: {e}")

    # ========================================================================
    # Mutation
    # ========================================================================

    def submit_distribution(
        self,
        amount: int,
        context: Optional[SubmissionContext] = None,
        dry_run: bool = False,
    ) -> Optional[str]:
        """
        Submit one advance-index action.

        Reliability Level: SOVEREIGN TIER
        Side Effects: One signed mutating request (none in dry run)

        Args:
            amount: Clamped distribution amount in minor units
            context: Tick context for logs
            dry_run: Log the action and return None without submitting

        Returns:
            Opaque receipt id on confirmation, None in dry run

        Raises:
            LedgerClientError: On transport failure or ledger rejection
        """
        context = context or SubmissionContext()
        correlation_id = context.correlation_id

        if dry_run:
            logger.info(
                f"[DRY RUN] Would call advance_index | "
                f"{describe_distribution(amount, context.token_supply, context.global_index)} | "
                f"correlation_id={correlation_id}"
            )
            return None

        if self.signer is None:
            raise LedgerClientError("KPR-LED-005: signer required for live submissions")

        params = [{
            "program": self.program_id,
            "globalState": self.global_state_address,
            "supplyMint": self.distribution_mint,
            "keeper": self.signer.key_id,
            "amount": amount,
        }]
        result = self._rpc("advanceIndex", params, signed=True)

        if not isinstance(result, str) or not result:
            raise LedgerClientError(f"KPR-LED-004: advanceIndex returned no receipt: {result!r}")

        logger.info(
            f"[KEEPER-LEDGER] advance_index confirmed | amount={amount} | "
            f"receipt={result} | correlation_id={correlation_id}"
        )
        return result

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _read_account(self, address: str) -> bytes:
        result = self._rpc("getAccountInfo", [address, {"encoding": "base64"}])
        value = result.get("value") if isinstance(result, dict) else None
        if value is None:
            raise AccountNotFoundError(f"KPR-LED-003: account {address} not found")

        data = value.get("data") if isinstance(value, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], str):
            raise LedgerClientError(f"KPR-LED-004: account {address} has no base64 data")
        try:
            return base64.b64decode(data[0], validate=True)
        except (binascii.Error, ValueError) as e:
            raise LedgerClientError(f"KPR-LED-004: account {address} data is not base64: {e}")

    @staticmethod
    def _parse_amount(result: Any, method: str) -> int:
        try:
            amount = int(result["value"]["amount"])
        except (KeyError, TypeError, ValueError):
            raise LedgerClientError(f"KPR-LED-004: {method} returned malformed amount: {result!r}")
        if amount < 0:
            raise LedgerClientError(f"KPR-LED-004: {method} returned negative amount: {amount}")
        return amount

    def _rpc(self, method: str, params: List[Any], signed: bool = False) -> Any:
        envelope: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        body = json.dumps(envelope, separators=(",", ":"))
        headers = {"Content-Type": "application/json"}
        if signed:
            headers.update(self.signer.sign_request(method, body))

        try:
            response = self._get_session().post(
                self.rpc_url,
                data=body,
                headers=headers,
                timeout=self.timeout,
            )
        except Timeout as e:
            logger.warning(f"[KPR-LED-001] Timeout | method={method} | error={e}")
            raise LedgerTransportError(f"KPR-LED-001: {method} timed out")
        except RequestsConnectionError as e:
            logger.warning(f"[KPR-LED-001] Connection error | method={method} | error={e}")
            raise LedgerTransportError(f"KPR-LED-001: {method} connection failed")
        except RequestException as e:
            raise LedgerTransportError(f"KPR-LED-001: {method} failed: {e}")

        if response.status_code != 200:
            raise LedgerTransportError(
                f"KPR-LED-001: {method} returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise LedgerClientError(f"KPR-LED-004: {method} response is not JSON")

        if not isinstance(payload, dict):
            raise LedgerClientError(f"KPR-LED-004: {method} response is not an object")

        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                raise LedgerRPCError(error.get("code"), str(error.get("message", "")))
            raise LedgerRPCError(None, str(error))

        if "result" not in payload:
            raise LedgerClientError(f"KPR-LED-004: {method} response has no result")
        return payload["result"]

    def _get_session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        """Close every HTTP session this client opened."""
        if self._shared_session is not None:
            self._shared_session.close()
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
