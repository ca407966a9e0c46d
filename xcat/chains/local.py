"""
In-memory Stellar ledger for simulations and tests.

Implements the same client surface as HorizonClient (lookup_account,
load_account, get_base_reserve, submit_transaction,
get_account_transactions) and applies transactions with the ledger rules
the escrow protocol depends on:

- sequence numbers (tx_bad_seq)
- time bounds against the simulated close time (tx_too_early / tx_too_late)
- fees charged to the source account, also for failed transactions
- signer weights and thresholds per operation, ed25519, hash-x and
  pre-auth signers (tx_bad_auth / op_bad_auth), unused signatures
  (tx_bad_auth_extra)
- balances and account existence (op_underfunded, op_no_destination, ...)
- minimum balances of (2 + subentries) * base_reserve, where each
  additional signer is one subentry. Neither the fee
  (tx_insufficient_balance) nor an outgoing amount (op_underfunded) may
  take an account below it, and a signer that raises it past the balance
  is refused (op_low_reserve).
"""

import copy
import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from stellar_sdk import (
    CreateAccount, DecoratedSignature, Keypair, Payment, SetOptions, Signer, StrKey, TransactionEnvelope,
)
from stellar_sdk.exceptions import BadSignatureError

from ..core import BASE_FEE
from ..errors import SubmissionError
from ..stellar.account import AccountState, Thresholds
from ..stellar.envelope import decode_envelope, min_time_of, source_of
from ..stellar.operations import SignerType, op_amount, op_destination, op_source, signer_key
from .stellar import AccountLookup, TESTNET_NETWORK_PASSPHRASE

log = logging.getLogger(__name__)

DEFAULT_BASE_RESERVE = 5_000_000    # 0.5 XLM
MAX_SIGNERS = 20


@dataclass
class LedgerRecord:
    """A transaction that reached the ledger (successful or failed)."""
    hash: str
    ledger: int
    close_time: int
    successful: bool
    envelope_xdr: str
    accounts: Set[str]


class _OperationFailed(Exception):
    def __init__(self, code: str):
        self.code = code
        super().__init__(code)


class LocalLedger:
    """
    Simulated ledger with a controllable clock.

    Each submit_transaction closes one ledger. The clock only moves when
    advance_time()/set_time() is called.
    """

    def __init__(self, network_passphrase: str = TESTNET_NETWORK_PASSPHRASE,
                 base_reserve: int = DEFAULT_BASE_RESERVE,
                 base_fee: int = BASE_FEE,
                 close_time: Optional[int] = None,
                 ledger_sequence: int = 1):
        self.network_passphrase = network_passphrase
        self.base_reserve = base_reserve
        self.base_fee = base_fee
        self.close_time = int(time.time()) if close_time is None else close_time
        self.ledger_sequence = ledger_sequence

        self.accounts: Dict[str, AccountState] = {}
        self.records: List[LedgerRecord] = []
        self._lock = threading.Lock()

    # =========================================================================
    # Simulation controls
    # =========================================================================

    def fund(self, address: str, balance: int) -> AccountState:
        """Create a funded account outside of any transaction (friendbot)."""
        with self._lock:
            if address in self.accounts:
                raise ValueError(f"Account already exists: {address}")
            account = self._new_account(address, balance)
            self.accounts[address] = account
            log.debug(f"Funded {address} with {balance} stroops")
            return copy.deepcopy(account)

    def advance_time(self, seconds: int):
        with self._lock:
            self.close_time += seconds

    def set_time(self, close_time: int):
        with self._lock:
            self.close_time = close_time

    def balance_of(self, address: str) -> int:
        return self.load_account(address).balance

    def min_balance_of(self, address: str) -> int:
        return self.load_account(address).min_balance(self.base_reserve)

    # =========================================================================
    # Client surface
    # =========================================================================

    def lookup_account(self, address: str) -> AccountLookup:
        with self._lock:
            account = self.accounts.get(address)
            if account is None:
                return AccountLookup.not_found(address)
            return AccountLookup.found(copy.deepcopy(account))

    def load_account(self, address: str) -> AccountState:
        return self.lookup_account(address).unwrap()

    def get_base_reserve(self) -> int:
        return self.base_reserve

    def get_account_transactions(self, address: str, limit: int = 50) -> List[TransactionEnvelope]:
        """Transactions touching an account, newest first (failed ones included)."""
        with self._lock:
            records = [r for r in reversed(self.records) if address in r.accounts][:limit]
        return [decode_envelope(r.envelope_xdr, self.network_passphrase) for r in records]

    def submit_transaction(self, tx: TransactionEnvelope) -> Dict:
        envelope = tx.to_xdr()
        # Apply the decoded envelope so only what would go over the wire counts
        tx = decode_envelope(envelope, self.network_passphrase)
        tx_hash = tx.hash()

        with self._lock:
            self.ledger_sequence += 1
            snapshot = copy.deepcopy(self.accounts)

            self._validate(tx)
            used: Set[int] = set()
            source = self.accounts[source_of(tx)]
            if not self._authorized(source, source.thresholds.low, tx_hash, tx.signatures, used):
                self._reject(tx_hash, {"transaction": "tx_bad_auth"})

            # Fee and sequence are consumed even if an operation fails
            source.balance -= tx.transaction.fee
            source.sequence = tx.transaction.sequence
            charged = copy.deepcopy(self.accounts)

            op_codes = []
            failed = False
            for op in tx.transaction.operations:
                try:
                    self._apply(op, tx, tx_hash, used)
                    op_codes.append("op_success")
                except _OperationFailed as e:
                    op_codes.append(e.code)
                    failed = True
                    break

            if not failed and len(used) != len(tx.signatures):
                self.accounts = snapshot
                self._reject(tx_hash, {"transaction": "tx_bad_auth_extra"})

            if failed:
                self.accounts = charged
            else:
                self._remove_pre_auth_signers(tx_hash)

            self.records.append(LedgerRecord(
                hash=tx_hash.hex(),
                ledger=self.ledger_sequence,
                close_time=self.close_time,
                successful=not failed,
                envelope_xdr=envelope,
                accounts=self._touched_accounts(tx),
            ))

            if failed:
                self._reject(tx_hash, {"transaction": "tx_failed", "operations": op_codes})

            log.info(f"Local ledger {self.ledger_sequence}: applied tx {tx_hash.hex()[:16]}...")
            return {"hash": tx_hash.hex(), "ledger": self.ledger_sequence, "successful": True}

    # =========================================================================
    # Validation
    # =========================================================================

    def _reject(self, tx_hash: bytes, result_codes: Dict):
        log.warning(f"Local ledger rejected tx {tx_hash.hex()[:16]}...: {result_codes}")
        raise SubmissionError(
            f"Transaction rejected: {result_codes}",
            result_codes=result_codes,
            tx_hash=tx_hash.hex(),
        )

    def _available(self, account: AccountState) -> int:
        """Balance above the account's minimum balance."""
        return account.balance - account.min_balance(self.base_reserve)

    def _validate(self, tx: TransactionEnvelope):
        tx_hash = tx.hash()
        body = tx.transaction
        source = self.accounts.get(source_of(tx))
        if source is None:
            self._reject(tx_hash, {"transaction": "tx_no_source_account"})
        if body.fee < self.base_fee * len(body.operations):
            self._reject(tx_hash, {"transaction": "tx_insufficient_fee"})
        time_bounds = body.preconditions.time_bounds if body.preconditions else None
        if time_bounds is not None:
            if self.close_time < min_time_of(tx):
                self._reject(tx_hash, {"transaction": "tx_too_early"})
            if time_bounds.max_time and self.close_time > time_bounds.max_time:
                self._reject(tx_hash, {"transaction": "tx_too_late"})
        if body.sequence != source.sequence + 1:
            self._reject(tx_hash, {"transaction": "tx_bad_seq"})
        if self._available(source) < body.fee:
            self._reject(tx_hash, {"transaction": "tx_insufficient_balance"})

    def _authorized(self, account: AccountState, threshold: int, tx_hash: bytes,
                    signatures: List[DecoratedSignature], used: Set[int]) -> bool:
        """Sum the weights of signers satisfied by the signatures."""
        needed = max(threshold, 1)
        master = StrKey.decode_ed25519_public_key(account.account_id)
        candidates = [(SignerType.ED25519, account.account_id, master, account.master_weight)]
        candidates.extend((SignerType.of(s), signer_key(s), s.signer_key.signer_key, s.weight)
                          for s in account.signers)

        weight = 0
        for signer_type, key, raw, signer_weight in candidates:
            if signer_weight == 0:
                continue
            if signer_type == SignerType.PRE_AUTH_TX:
                if raw == tx_hash:
                    weight += signer_weight
                continue
            for idx, sig in enumerate(signatures):
                if _signature_matches(signer_type, raw, key, sig, tx_hash):
                    weight += signer_weight
                    used.add(idx)
                    break
        return weight >= needed

    # =========================================================================
    # Operations
    # =========================================================================

    def _apply(self, op, tx: TransactionEnvelope, tx_hash: bytes, used: Set[int]):
        source_id = op_source(op) or source_of(tx)
        source = self.accounts.get(source_id)
        if source is None:
            raise _OperationFailed("op_no_source_account")

        if isinstance(op, SetOptions):
            threshold = source.thresholds.high
        else:
            threshold = source.thresholds.medium
        if not self._authorized(source, threshold, tx_hash, tx.signatures, used):
            raise _OperationFailed("op_bad_auth")

        if isinstance(op, CreateAccount):
            self._create_account(source, op)
        elif isinstance(op, Payment):
            self._payment(source, op)
        elif isinstance(op, SetOptions):
            self._set_options(source, op)
        else:
            raise _OperationFailed("op_not_supported")

    def _create_account(self, source: AccountState, op: CreateAccount):
        starting_balance = op_amount(op)
        if op.destination in self.accounts:
            raise _OperationFailed("op_already_exists")
        if starting_balance < 2 * self.base_reserve:
            raise _OperationFailed("op_low_reserve")
        if self._available(source) < starting_balance:
            raise _OperationFailed("op_underfunded")
        source.balance -= starting_balance
        self.accounts[op.destination] = self._new_account(op.destination, starting_balance)

    def _payment(self, source: AccountState, op: Payment):
        amount = op_amount(op)
        if not op.asset.is_native():
            raise _OperationFailed("op_not_supported")
        destination = self.accounts.get(op_destination(op))
        if destination is None:
            raise _OperationFailed("op_no_destination")
        if self._available(source) < amount:
            raise _OperationFailed("op_underfunded")
        source.balance -= amount
        destination.balance += amount

    def _set_options(self, account: AccountState, op: SetOptions):
        if op.master_weight is not None:
            account.master_weight = op.master_weight
        if op.low_threshold is not None:
            account.thresholds.low = op.low_threshold
        if op.med_threshold is not None:
            account.thresholds.medium = op.med_threshold
        if op.high_threshold is not None:
            account.thresholds.high = op.high_threshold
        if op.signer is not None:
            self._set_signer(account, op.signer)

    def _set_signer(self, account: AccountState, signer: Signer):
        signer_type = SignerType.of(signer)
        key = signer_key(signer)
        if signer_type == SignerType.ED25519 and key == account.account_id:
            raise _OperationFailed("op_bad_signer")
        others = [s for s in account.signers
                  if not (SignerType.of(s) == signer_type and signer_key(s) == key)]
        if signer.weight == 0:
            account.signers = others
            return
        if len(others) >= MAX_SIGNERS:
            raise _OperationFailed("op_too_many_signers")
        if len(others) == len(account.signers):
            # A new signer is one more subentry
            if account.balance < (2 + len(others) + 1) * self.base_reserve:
                raise _OperationFailed("op_low_reserve")
        account.signers = others + [signer]

    def _remove_pre_auth_signers(self, tx_hash: bytes):
        for account in self.accounts.values():
            account.signers = [
                s for s in account.signers
                if not (SignerType.of(s) == SignerType.PRE_AUTH_TX and s.signer_key.signer_key == tx_hash)
            ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _new_account(self, address: str, balance: int) -> AccountState:
        return AccountState(
            account_id=address,
            sequence=self.ledger_sequence << 32,
            balance=balance,
            signers=[],
            master_weight=1,
            thresholds=Thresholds(),
        )

    @staticmethod
    def _touched_accounts(tx: TransactionEnvelope) -> Set[str]:
        touched = {source_of(tx)}
        for op in tx.transaction.operations:
            if op.source is not None:
                touched.add(op_source(op))
            if isinstance(op, (CreateAccount, Payment)):
                touched.add(op_destination(op))
        return touched


def _signature_matches(signer_type: SignerType, raw: bytes, key: str,
                       sig: DecoratedSignature, tx_hash: bytes) -> bool:
    if sig.signature_hint != raw[-4:]:
        return False
    if signer_type == SignerType.ED25519:
        try:
            Keypair.from_public_key(key).verify(tx_hash, sig.signature)
        except BadSignatureError:
            return False
        return True
    if signer_type == SignerType.SHA256_HASH:
        return hashlib.sha256(sig.signature).digest() == raw
    return False
