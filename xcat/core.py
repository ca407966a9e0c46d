"""
Core types and helpers for the xcat Stellar SDK.
"""

import hashlib
import secrets
from enum import Enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, Union


class SwapKind(Enum):
    """The four transactions that drive one side of a swap."""
    CREATE = "create"       # Seller creates and configures the escrow
    DEPOSIT = "deposit"     # Seller funds the escrow
    WITHDRAW = "withdraw"   # Buyer claims, revealing the preimage
    REFUND = "refund"       # Seller reclaims after locktime (buyer pre-signed)


@dataclass
class SwapParams:
    """Parameters both parties agree on before the escrow is created."""
    hashlock: str           # SHA256(x) (hex, 64 chars)
    locktime: int           # Unix timestamp, earliest refund time
    amount: int             # Swap amount in stroops
    depositor: str          # Seller address (G...)
    withdrawer: str         # Buyer address (G...)

    escrow_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hashlock": self.hashlock,
            "locktime": self.locktime,
            "amount": self.amount,
            "depositor": self.depositor,
            "withdrawer": self.withdrawer,
            "escrow_address": self.escrow_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapParams":
        return cls(
            hashlock=data["hashlock"],
            locktime=int(data["locktime"]),
            amount=int(data["amount"]),
            depositor=data["depositor"],
            withdrawer=data["withdrawer"],
            escrow_address=data.get("escrow_address"),
        )


# =============================================================================
# HTLC Utilities
# =============================================================================

def generate_secret() -> tuple[str, str]:
    """
    Generate a random secret and its SHA256 hashlock.

    Returns:
        (secret_hex, hashlock_hex)
    """
    secret = secrets.token_bytes(32)
    hashlock = hashlib.sha256(secret).digest()
    return secret.hex(), hashlock.hex()


def hashlock_for(preimage_hex: str) -> str:
    """SHA256 hashlock (hex) of a hex preimage."""
    return hashlib.sha256(bytes.fromhex(preimage_hex)).hexdigest()


def verify_preimage(preimage_hex: str, hashlock_hex: str) -> bool:
    """
    Verify that SHA256(preimage) == hashlock.

    Args:
        preimage_hex: Preimage as hex string
        hashlock_hex: Expected SHA256 hash as hex string

    Returns:
        True if valid
    """
    try:
        preimage = bytes.fromhex(preimage_hex)
        expected = bytes.fromhex(hashlock_hex)
        actual = hashlib.sha256(preimage).digest()
        return actual == expected
    except (ValueError, TypeError):
        return False


def xlm_to_stroops(xlm: Union[str, int, Decimal]) -> int:
    """Convert an XLM amount ("12.5", Decimal, int) to stroops."""
    try:
        value = Decimal(str(xlm))
    except InvalidOperation:
        raise ValueError(f"Invalid XLM amount: {xlm!r}")
    stroops = value * STROOPS_PER_XLM
    if stroops != stroops.to_integral_value():
        raise ValueError(f"XLM amount has more than 7 decimals: {xlm!r}")
    return int(stroops)


def stroops_to_xlm(stroops: int) -> str:
    """Format stroops the way Horizon does ("100.0000000")."""
    return f"{Decimal(stroops) / STROOPS_PER_XLM:.7f}"


# =============================================================================
# Constants
# =============================================================================

STROOPS_PER_XLM = 10_000_000

# Fixed per-operation fee (fee markets are out of scope)
BASE_FEE = 100

# Escrow layout
ESCROW_SIGNER_COUNT = 3
ESCROW_THRESHOLD = 2
ESCROW_SIGNER_WEIGHT = 1
ESCROW_MASTER_WEIGHT = 0

# Subentries added to the escrow by the create transaction (one per
# non-master signer); each costs one base reserve on top of the two base
# reserves every account holds.
ESCROW_SUBENTRIES = ESCROW_SIGNER_COUNT


def escrow_min_balance(base_reserve: int) -> int:
    """Minimum balance (stroops) of a fully configured escrow account."""
    if base_reserve <= 0:
        raise ValueError(f"Invalid base reserve: {base_reserve}")
    return (2 + ESCROW_SUBENTRIES) * base_reserve


def escrow_starting_balance(base_reserve: int, base_fee: int = BASE_FEE) -> int:
    """
    Balance the create transaction gives the escrow.

    The escrow is the source of the withdraw or refund and pays that fee
    itself (one operation, and only one of the two can apply), so it holds
    one base fee on top of its minimum balance. After either transaction
    it is left with exactly the minimum balance.
    """
    if base_fee < 0:
        raise ValueError(f"Invalid base fee: {base_fee}")
    return escrow_min_balance(base_reserve) + base_fee
