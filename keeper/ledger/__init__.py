# ============================================================================
# Accrual Keeper v1.0.0
# Ledger Integration - JSON-RPC Client and Request Signer
# ============================================================================

from keeper.ledger.client import (
    LedgerClient,
    LedgerClientError,
    LedgerTransportError,
    LedgerRPCError,
    AccountNotFoundError,
    SubmissionContext,
)
from keeper.ledger.signer import LedgerSigner, LedgerSignerError, MissingCredentialsError

__all__ = [
    "LedgerClient",
    "LedgerClientError",
    "LedgerTransportError",
    "LedgerRPCError",
    "AccountNotFoundError",
    "SubmissionContext",
    "LedgerSigner",
    "LedgerSignerError",
    "MissingCredentialsError",
]
