# ============================================================================
# Accrual Keeper v1.0.0
# Ledger Request Signer - Keeper Authorization for Mutating Calls
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Signs advance-index requests sent to the ledger gateway
#
# SOVEREIGN MANDATE:
#   - Credentials come from configuration only, never from the advisor
#   - Credentials NEVER appear in logs
#   - KPR-SEC-001 raised if credentials missing
#
# Signature Format:
#   payload = timestamp + method + body
#   signature = HMAC-SHA256(secret, payload)
#
# The secret may be given as a raw string or as a JSON array of byte values
# (the format most key export tools write).
#
# ============================================================================

import hashlib
import hmac
import json
import logging
import time
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class LedgerSignerError(Exception):
    """Base exception for signer errors."""
    pass


class MissingCredentialsError(LedgerSignerError):
    """Raised when keeper credentials are missing (KPR-SEC-001)."""
    pass


def parse_secret(secret: str) -> bytes:
    """
    Decode secret material.

    A JSON array of integers 0-255 is decoded to those bytes; anything else
    is taken as the UTF-8 encoding of the string.
    """
    text = secret.strip()
    if text.startswith("["):
        try:
            values = json.loads(text)
        except ValueError:
            raise LedgerSignerError("KPR-SEC-002: secret looks like a JSON array but does not parse")
        if not isinstance(values, list) or not values:
            raise LedgerSignerError("KPR-SEC-002: secret byte array is empty")
        if not all(isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= 255 for v in values):
            raise LedgerSignerError("KPR-SEC-002: secret byte array must hold integers 0-255")
        return bytes(values)
    return text.encode("utf-8")


class LedgerSigner:
    """
    HMAC-SHA256 request signer for the keeper.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Non-empty key id and secret
    Side Effects: Raises KPR-SEC-001 if credentials missing

    Example Usage:
        signer = LedgerSigner(key_id="keeper-1", secret="...")
        headers = signer.sign_request("advanceIndex", body)
    """

    HEADER_KEY = "X-KEEPER-KEY"
    HEADER_SIGNATURE = "X-KEEPER-SIGNATURE"
    HEADER_TIMESTAMP = "X-KEEPER-TIMESTAMP"

    def __init__(self, key_id: Optional[str], secret: Optional[str], correlation_id: Optional[str] = None):
        """
        Args:
            key_id: Keeper key identifier
            secret: Keeper signing secret
            correlation_id: Audit trail identifier

        Raises:
            MissingCredentialsError: If either value is empty
        """
        self.correlation_id = correlation_id

        missing = []
        if not key_id:
            missing.append("KEEPER_KEY_ID")
        if not secret:
            missing.append("KEEPER_SECRET")

        if missing:
            logger.error(
                f"[KPR-SEC-001] Missing credentials | "
                f"missing={missing} | correlation_id={correlation_id}"
            )
            raise MissingCredentialsError(
                f"KPR-SEC-001: Missing keeper credentials: {', '.join(missing)}"
            )

        self._key_id = key_id
        self._secret = parse_secret(secret)

        logger.debug(
            f"[KEEPER-SIGNER] Signer initialized | "
            f"key_id={self.get_redacted_key()} | correlation_id={correlation_id}"
        )

    @property
    def key_id(self) -> str:
        return self._key_id

    def sign_request(self, method: str, body: str = "", timestamp: Optional[int] = None) -> Dict[str, str]:
        """
        Generate authentication headers for one request.

        Args:
            method: JSON-RPC method name
            body: Exact request body that will be sent
            timestamp: Unix timestamp in milliseconds (auto-generated if None)

        Returns:
            Dict with X-KEEPER-KEY, X-KEEPER-SIGNATURE, X-KEEPER-TIMESTAMP
        """
        if timestamp is None:
            timestamp = int(time.time() * 1000)

        payload = f"{timestamp}{method}{body}"
        signature = hmac.new(self._secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()

        logger.debug(
            f"[KEEPER-SIGNER] Request signed | method={method} | "
            f"timestamp={timestamp} | signature=[REDACTED] | "
            f"correlation_id={self.correlation_id}"
        )

        return {
            self.HEADER_KEY: self._key_id,
            self.HEADER_SIGNATURE: signature,
            self.HEADER_TIMESTAMP: str(timestamp),
        }

    def get_redacted_key(self) -> str:
        """Return first 4 and last 4 characters of the key id only."""
        if len(self._key_id) > 8:
            return f"{self._key_id[:4]}...{self._key_id[-4:]}"
        return "[REDACTED]"
