"""
Stellar HTLC emulation.

Stellar has no script-level hashlock, so the HTLC is an escrow account
whose signer set enforces the unlock rules:

- escrow: canonical signer layout and holding-account validation
- transactions: create / deposit / withdraw / refund transaction factory
"""

from .escrow import (
    EscrowSpec,
    signer_matches,
    is_canonical_layout,
    is_canonical_account,
    layout_mismatches,
    canonical_signers,
)
from .transactions import SwapTransactionFactory

__all__ = [
    "EscrowSpec",
    "signer_matches",
    "is_canonical_layout",
    "is_canonical_account",
    "layout_mismatches",
    "canonical_signers",
    "SwapTransactionFactory",
]
