"""
Account state as loaded from the ledger.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from stellar_sdk import Account, Signer

from ..core import xlm_to_stroops, stroops_to_xlm
from .operations import SignerType, make_signer, signer_key, signer_to_dict


@dataclass
class Thresholds:
    low: int = 0
    medium: int = 0
    high: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "low_threshold": self.low,
            "med_threshold": self.medium,
            "high_threshold": self.high,
        }


@dataclass
class AccountState:
    """
    Ledger account record.

    `signers` holds the additional signers only; the account's own key is
    described by `master_weight`. `sequence` is the last used sequence
    number; builders consume `sequence + 1`.
    """
    account_id: str
    sequence: int
    balance: int = 0                    # Native balance in stroops
    signers: List[Signer] = field(default_factory=list)
    master_weight: int = 1
    thresholds: Thresholds = field(default_factory=Thresholds)

    def signer_weight(self, signer_type: SignerType, key: str) -> int:
        """Weight of a signer key on this account (master key included)."""
        if signer_type == SignerType.ED25519 and key == self.account_id:
            return self.master_weight
        for s in self.signers:
            if SignerType.of(s) == signer_type and signer_key(s) == key:
                return s.weight
        return 0

    def increment_sequence(self) -> int:
        self.sequence += 1
        return self.sequence

    def min_balance(self, base_reserve: int) -> int:
        """Two base reserves plus one per additional signer."""
        return (2 + len(self.signers)) * base_reserve

    def to_sdk_account(self) -> Account:
        """Sequence-tracking account for stellar_sdk.TransactionBuilder."""
        return Account(self.account_id, self.sequence)

    @classmethod
    def from_horizon(cls, data: Dict[str, Any]) -> "AccountState":
        """
        Parse a Horizon /accounts/{id} record.

        Horizon lists the master key among the signers; it is split out into
        `master_weight`.
        """
        account_id = data.get("account_id") or data["id"]

        balance = 0
        for b in data.get("balances", []):
            if b.get("asset_type") == "native":
                balance = xlm_to_stroops(b["balance"])

        master_weight = 0
        signers = []
        for s in data.get("signers", []):
            signer_type = SignerType(s["type"])
            if signer_type == SignerType.ED25519 and s["key"] == account_id:
                master_weight = int(s["weight"])
                continue
            signers.append(make_signer(signer_type, s["key"], int(s["weight"])))

        t = data.get("thresholds", {})
        thresholds = Thresholds(
            low=int(t.get("low_threshold", 0)),
            medium=int(t.get("med_threshold", 0)),
            high=int(t.get("high_threshold", 0)),
        )

        return cls(
            account_id=account_id,
            sequence=int(data["sequence"]),
            balance=balance,
            signers=signers,
            master_weight=master_weight,
            thresholds=thresholds,
        )

    @classmethod
    def from_sdk_account(cls, account: Account) -> "AccountState":
        """Parse the Horizon record carried by a Server.load_account() result."""
        if account.raw_data:
            return cls.from_horizon(account.raw_data)
        return cls(account_id=account.account.account_id, sequence=account.sequence)

    def to_horizon(self) -> Dict[str, Any]:
        """Render as a Horizon-style account record."""
        signers = [signer_to_dict(s) for s in self.signers]
        signers.append({
            "type": SignerType.ED25519.value,
            "key": self.account_id,
            "weight": self.master_weight,
        })
        return {
            "id": self.account_id,
            "account_id": self.account_id,
            "sequence": str(self.sequence),
            "balances": [{"asset_type": "native", "balance": stroops_to_xlm(self.balance)}],
            "signers": signers,
            "thresholds": self.thresholds.to_dict(),
        }
