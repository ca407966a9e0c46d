"""
Escrow (holding) account layout for Stellar HTLC emulation.

Stellar has no hash-time-locked contract opcode, so the HTLC is a
disposable account whose signers encode the unlock rules:

    signer                      weight
    sha256_hash(HashX)          1
    ed25519(withdrawer/buyer)   1
    ed25519(depositor/seller)   1
    master key                  0
    thresholds low/med/high     2

Any outgoing transaction needs weight 2, i.e. either
buyer + preimage x (withdraw, reveals x) or buyer + seller (the refund the
buyer pre-signs with a locktime). Neither party can move funds alone.
"""

import logging
from typing import Callable, List

from stellar_sdk import Signer

from ..core import (
    ESCROW_SIGNER_COUNT,
    ESCROW_THRESHOLD,
    ESCROW_SIGNER_WEIGHT,
    ESCROW_MASTER_WEIGHT,
)
from ..errors import ConstructionError, InvalidLayoutError
from ..stellar.account import AccountState
from ..stellar.operations import SignerType, make_signer, signer_key, hashx_signer_key
from ..chains.stellar import LookupStatus

log = logging.getLogger(__name__)

HASHX_WEIGHT = ESCROW_SIGNER_WEIGHT
WITHDRAWER_WEIGHT = ESCROW_SIGNER_WEIGHT
DEPOSITOR_WEIGHT = ESCROW_SIGNER_WEIGHT


def signer_matches(signer: Signer, signer_type: SignerType, key: str, weight: int) -> bool:
    """Structural equality on type, key and weight."""
    return (SignerType.of(signer) == signer_type and signer_key(signer) == key
            and signer.weight == weight)


def match_one(signers: List[Signer], matcher: Callable[[Signer], bool]) -> bool:
    """True if exactly one signer satisfies matcher."""
    return len([s for s in signers if matcher(s)]) == 1


def _roles(depositor_address: str, withdrawer_address: str, hashx_key: str):
    return [
        ("hash(x)", SignerType.SHA256_HASH, hashx_key, HASHX_WEIGHT),
        ("withdrawer", SignerType.ED25519, withdrawer_address, WITHDRAWER_WEIGHT),
        ("depositor", SignerType.ED25519, depositor_address, DEPOSITOR_WEIGHT),
    ]


def canonical_signers(depositor_address: str, withdrawer_address: str, hash_x: str) -> List[Signer]:
    """The signer set a correctly configured escrow carries."""
    return [
        make_signer(signer_type, key, weight)
        for _, signer_type, key, weight in _roles(depositor_address, withdrawer_address, hashx_signer_key(hash_x))
    ]


def is_canonical_layout(signers: List[Signer], depositor_address: str,
                        withdrawer_address: str, hash_x: str) -> bool:
    """
    Check a signer set against the escrow layout.

    Exactly 3 signers, and exactly one signer per role; duplicated role
    entries are rejected.
    """
    if not depositor_address or not withdrawer_address or depositor_address == withdrawer_address:
        return False
    try:
        hashx_key = hashx_signer_key(hash_x)
    except ConstructionError:
        return False

    return len(signers) == ESCROW_SIGNER_COUNT and all(
        match_one(signers, lambda s, t=signer_type, k=key, w=weight: signer_matches(s, t, k, w))
        for _, signer_type, key, weight in _roles(depositor_address, withdrawer_address, hashx_key)
    )


def layout_mismatches(account: AccountState, depositor_address: str,
                      withdrawer_address: str, hash_x: str) -> List[str]:
    """Every way an account deviates from the escrow layout (empty if canonical)."""
    problems = []
    try:
        hashx_key = hashx_signer_key(hash_x)
    except ConstructionError as e:
        return [f"invalid hash(x): {e}"]
    if not depositor_address or not withdrawer_address:
        problems.append("depositor and withdrawer addresses are required")
    elif depositor_address == withdrawer_address:
        problems.append("depositor and withdrawer are the same account")

    if len(account.signers) != ESCROW_SIGNER_COUNT:
        problems.append(f"expected {ESCROW_SIGNER_COUNT} signers, found {len(account.signers)}")

    for role, signer_type, key, weight in _roles(depositor_address, withdrawer_address, hashx_key):
        count = len([s for s in account.signers if signer_matches(s, signer_type, key, weight)])
        if count != 1:
            problems.append(f"{role} signer (weight {weight}) present {count} times")

    if account.master_weight != ESCROW_MASTER_WEIGHT:
        problems.append(f"master weight is {account.master_weight}, expected {ESCROW_MASTER_WEIGHT}")

    t = account.thresholds
    if (t.low, t.medium, t.high) != (ESCROW_THRESHOLD,) * 3:
        problems.append(f"thresholds are {t.low}/{t.medium}/{t.high}, expected {ESCROW_THRESHOLD} for all")

    return problems


def is_canonical_account(account: AccountState, depositor_address: str,
                         withdrawer_address: str, hash_x: str) -> bool:
    """Signer layout plus master weight 0 and all thresholds 2."""
    return not layout_mismatches(account, depositor_address, withdrawer_address, hash_x)


class EscrowSpec:
    """
    Validates holding accounts on the ledger.

    Both parties run this before committing: the buyer before handing over
    the pre-signed refund and locking counter-funds, the seller before
    depositing.
    """

    def __init__(self, client):
        self.client = client

    def is_valid_holding_account(self, holding_address: str, depositor_address: str,
                                 withdrawer_address: str, hash_x: str) -> bool:
        """
        Validates a given holding account exists and is set up correctly.

        Args:
            holding_address: Holding account public key
            depositor_address: Address of the depositing account (seller)
            withdrawer_address: Address of the withdrawer (buyer)
            hash_x: SHA256(x) hashlock (hex) or X... signer key

        Returns:
            False if the account does not exist or is not canonical.

        Raises:
            Any lookup failure other than not-found, unchanged.
        """
        lookup = self.client.lookup_account(holding_address)

        if lookup.status == LookupStatus.NOT_FOUND:
            log.debug(f"Holding account {holding_address} does not exist")
            return False
        if lookup.status == LookupStatus.ERROR:
            log.error(f"Unknown error fetching account {holding_address}: {lookup.error}")
            raise lookup.error

        mismatches = layout_mismatches(lookup.account, depositor_address, withdrawer_address, hash_x)
        if mismatches:
            log.warning(f"Holding account {holding_address} rejected: {'; '.join(mismatches)}")
            return False
        return True

    def check_holding_account(self, holding_address: str, depositor_address: str,
                              withdrawer_address: str, hash_x: str) -> AccountState:
        """
        Like is_valid_holding_account, but raises instead of returning False.

        Raises:
            AccountNotFoundError, InvalidLayoutError, or the original lookup error
        """
        account = self.client.lookup_account(holding_address).unwrap()
        mismatches = layout_mismatches(account, depositor_address, withdrawer_address, hash_x)
        if mismatches:
            raise InvalidLayoutError(holding_address, mismatches)
        return account
