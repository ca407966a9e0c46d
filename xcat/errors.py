"""
Exception taxonomy for the xcat SDK.

    XcatError
    ├── AccountNotFoundError   account does not exist (a normal negative answer)
    ├── InvalidLayoutError     escrow exists but is not configured canonically
    ├── LedgerConnectionError  transport failures and malformed responses
    ├── ConstructionError      missing/invalid inputs to a builder (also ValueError)
    └── SubmissionError        ledger rejected a transaction
"""

from typing import Dict, List, Optional


class XcatError(Exception):
    """Base class for all SDK errors."""


class AccountNotFoundError(XcatError):
    """The requested account does not exist on the ledger."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Account not found: {address}")


class InvalidLayoutError(XcatError):
    """An account exists but its signers/thresholds are not the escrow layout."""

    def __init__(self, address: str, mismatches: List[str]):
        self.address = address
        self.mismatches = mismatches
        super().__init__(
            f"Account {address} is not a valid holding account: "
            + "; ".join(mismatches)
        )


class LedgerConnectionError(XcatError):
    """Network or response-format failure talking to the ledger."""


class ConstructionError(XcatError, ValueError):
    """A transaction or operation could not be built from the given inputs."""


class SubmissionError(XcatError):
    """
    The ledger rejected a transaction.

    Carries Horizon's result codes verbatim, e.g.
    {"transaction": "tx_failed", "operations": ["op_underfunded"]}.
    """

    def __init__(self, message: str, result_codes: Optional[Dict] = None,
                 tx_hash: Optional[str] = None):
        self.result_codes = result_codes or {}
        self.tx_hash = tx_hash
        super().__init__(message)

    @property
    def transaction_code(self) -> Optional[str]:
        return self.result_codes.get("transaction")

    @property
    def operation_codes(self) -> List[str]:
        return list(self.result_codes.get("operations") or [])
