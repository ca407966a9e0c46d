"""
xcat - Stellar Cross-Chain Atomic Swap Library

Emulates an HTLC on Stellar with an escrow account whose signers are the
buyer, the seller and the hash of a secret x. The buyer withdraws by
revealing x; the seller refunds after the locktime with a refund the buyer
pre-signed.

Usage:
    from xcat import HorizonClient, StellarConfig, SwapExecutor, Keypair
    from xcat import generate_secret

    client = HorizonClient(StellarConfig(network="testnet"))
    executor = SwapExecutor(client)

    secret, hashlock = generate_secret()          # buyer
    escrow = Keypair.random()                     # seller
    executor.create_holding_account(escrow, seller, buyer.public_key, hashlock)
    refund = executor.prepare_refund(buyer, escrow.public_key,
                                     seller.public_key, hashlock, locktime, amount)
    executor.deposit(seller, escrow.public_key, amount)
    executor.withdraw(buyer, escrow.public_key, secret, amount)
"""

from .core import (
    SwapKind,
    SwapParams,
    generate_secret,
    hashlock_for,
    verify_preimage,
    xlm_to_stroops,
    stroops_to_xlm,
    escrow_min_balance,
    escrow_starting_balance,
    STROOPS_PER_XLM,
    BASE_FEE,
)
from .errors import (
    XcatError,
    AccountNotFoundError,
    InvalidLayoutError,
    LedgerConnectionError,
    ConstructionError,
    SubmissionError,
)

from .stellar import Keypair, Signer, SignerType, AccountState, TransactionEnvelope
from .chains import HorizonClient, StellarConfig, LocalLedger, AccountLookup, LookupStatus

from .htlc import EscrowSpec, SwapTransactionFactory, signer_matches, is_canonical_layout

from .swap import SwapExecutor, SwapWatcher, WatcherConfig

__version__ = "0.1.0"
__all__ = [
    # Core types
    "SwapKind",
    "SwapParams",
    # Utilities
    "generate_secret",
    "hashlock_for",
    "verify_preimage",
    "xlm_to_stroops",
    "stroops_to_xlm",
    "escrow_min_balance",
    "escrow_starting_balance",
    "STROOPS_PER_XLM",
    "BASE_FEE",
    # Errors
    "XcatError",
    "AccountNotFoundError",
    "InvalidLayoutError",
    "LedgerConnectionError",
    "ConstructionError",
    "SubmissionError",
    # Ledger primitives
    "Keypair",
    "Signer",
    "SignerType",
    "AccountState",
    "TransactionEnvelope",
    # Clients
    "HorizonClient",
    "StellarConfig",
    "LocalLedger",
    "AccountLookup",
    "LookupStatus",
    # HTLC
    "EscrowSpec",
    "SwapTransactionFactory",
    "signer_matches",
    "is_canonical_layout",
    # Swap
    "SwapExecutor",
    "SwapWatcher",
    "WatcherConfig",
]
