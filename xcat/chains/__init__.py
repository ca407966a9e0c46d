"""
Ledger clients for the xcat SDK.

Each client provides the same interface:
- lookup_account / load_account
- get_base_reserve
- submit_transaction
- get_account_transactions

HorizonClient talks to a real network; LocalLedger simulates one in memory.
"""

from .stellar import (
    HorizonClient,
    StellarConfig,
    AccountLookup,
    LookupStatus,
    NETWORKS,
    PUBLIC_NETWORK_PASSPHRASE,
    TESTNET_NETWORK_PASSPHRASE,
)
from .local import LocalLedger

__all__ = [
    "HorizonClient",
    "StellarConfig",
    "AccountLookup",
    "LookupStatus",
    "NETWORKS",
    "PUBLIC_NETWORK_PASSPHRASE",
    "TESTNET_NETWORK_PASSPHRASE",
    "LocalLedger",
]
