"""
Stellar ledger primitives.

Keys, transactions and their XDR envelopes come from stellar_sdk. This
package adds the escrow protocol's operation helpers and the loaded
account state. Nothing here performs I/O.
"""

from stellar_sdk import Keypair, Signer, TransactionEnvelope

from .operations import (
    Operation,
    SignerType,
    create_account_op,
    payment_op,
    set_options_op,
    ed25519_signer,
    hashx_signer,
    hashx_signer_key,
    hashlock_digest,
    make_signer,
    signer_key,
)
from .account import AccountState, Thresholds

__all__ = [
    "Keypair",
    "Signer",
    "TransactionEnvelope",
    "Operation",
    "SignerType",
    "create_account_op",
    "payment_op",
    "set_options_op",
    "ed25519_signer",
    "hashx_signer",
    "hashx_signer_key",
    "hashlock_digest",
    "make_signer",
    "signer_key",
    "AccountState",
    "Thresholds",
]
