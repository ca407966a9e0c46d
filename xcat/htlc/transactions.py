"""
Transactions that drive a Stellar XCAT swap.

    create    seller -> new escrow, configure signers      signed: escrow + seller
    deposit   seller -> escrow, swap amount                signed: seller
    withdraw  escrow -> buyer, swap amount                 signed: buyer + x
    refund    escrow -> seller, swap amount, minTime=T     signed: buyer (seller co-signs)

Withdraw and refund both spend the escrow's next sequence number, so at
most one of them can ever be applied.

The factory only builds and signs. Submission and any retry policy belong
to the caller.
"""

import hashlib
import logging
from typing import Optional

from stellar_sdk import Keypair, Payment, TransactionBuilder, TransactionEnvelope
from stellar_sdk.exceptions import BadSignatureError, SignatureExistError

from ..core import BASE_FEE, ESCROW_THRESHOLD, ESCROW_MASTER_WEIGHT, escrow_starting_balance
from ..errors import ConstructionError
from ..stellar.account import AccountState
from ..stellar.envelope import decode_envelope, min_time_of, source_of
from ..stellar.operations import (
    create_account_op, payment_op, set_options_op,
    ed25519_signer, hashx_signer, hashlock_digest,
    op_amount, op_destination, op_source,
)
from .escrow import HASHX_WEIGHT, WITHDRAWER_WEIGHT, DEPOSITOR_WEIGHT

log = logging.getLogger(__name__)


def _require_signer(name: str, keypair: Optional[Keypair]):
    if keypair is None:
        raise ConstructionError(f"{name} keypair is required")
    if not keypair.can_sign():
        raise ConstructionError(f"{name} keypair has no private key")


def _require_account(name: str, account: Optional[AccountState]):
    if account is None:
        raise ConstructionError(f"{name} account is required")


class SwapTransactionFactory:
    """
    Builds the create / deposit / withdraw / refund transactions.

    Account states passed in must reflect the account's current sequence
    number; each build consumes the next one and bumps the state in place.
    """

    def __init__(self, network_passphrase: str, base_fee: int = BASE_FEE):
        if not network_passphrase:
            raise ConstructionError("network_passphrase is required")
        self.network_passphrase = network_passphrase
        self.base_fee = base_fee

    def _build(self, account: AccountState, *operations, min_time: int = 0) -> TransactionEnvelope:
        """Build on account's next sequence number, then record it as used."""
        source = account.to_sdk_account()
        builder = TransactionBuilder(source, self.network_passphrase, base_fee=self.base_fee)
        for op in operations:
            builder.append_operation(op)
        # max_time 0: no upper bound
        builder.add_time_bounds(min_time, 0)
        envelope = builder.build()
        account.sequence = source.sequence
        return envelope

    # =========================================================================
    # Create
    # =========================================================================

    def create_holding_account_tx(self, escrow_keypair: Keypair, seller_keypair: Keypair,
                                  seller_account: AccountState, buyer_address: str,
                                  hashlock: str, base_reserve: int) -> TransactionEnvelope:
        """
        Seller creates and configures the holding (escrow) account.

        All configuration happens in one transaction: a half-configured
        escrow would be spendable by its own master key.

        Args:
            escrow_keypair: Fresh keypair for the holding account
            seller_keypair: Seller (depositor) keypair, funds the account
            seller_account: Seller's loaded account state
            buyer_address: Buyer (withdrawer) address
            hashlock: SHA256(x) (hex)
            base_reserve: Base reserve of the latest ledger (stroops)

        Returns:
            Envelope signed by the escrow and seller keys
        """
        _require_signer("escrow", escrow_keypair)
        _require_signer("seller", seller_keypair)
        _require_account("seller", seller_account)
        if seller_keypair.public_key != seller_account.account_id:
            raise ConstructionError("seller keypair does not match seller account")
        if not buyer_address:
            raise ConstructionError("buyer address is required")
        if not base_reserve or base_reserve <= 0:
            raise ConstructionError(f"base reserve must be positive: {base_reserve!r}")

        escrow = escrow_keypair.public_key
        seller = seller_account.account_id
        if escrow in (seller, buyer_address):
            raise ConstructionError("escrow keypair must be a fresh account")
        if seller == buyer_address:
            raise ConstructionError("buyer and seller must differ")

        tx = self._build(
            seller_account,
            # Op1: create holding account (reserves for 3 signers + one fee)
            create_account_op(escrow, escrow_starting_balance(base_reserve, self.base_fee)),
            # Op2: buyer signer
            set_options_op(signer=ed25519_signer(buyer_address, WITHDRAWER_WEIGHT), source=escrow),
            # Op3: seller signer (co-signs the refund)
            set_options_op(signer=ed25519_signer(seller, DEPOSITOR_WEIGHT), source=escrow),
            # Op4: hash(x) signer, master weight 0, all thresholds 2
            set_options_op(
                signer=hashx_signer(hashlock, HASHX_WEIGHT),
                master_weight=ESCROW_MASTER_WEIGHT,
                low_threshold=ESCROW_THRESHOLD,
                med_threshold=ESCROW_THRESHOLD,
                high_threshold=ESCROW_THRESHOLD,
                source=escrow,
            ),
        )
        tx.sign(escrow_keypair)
        tx.sign(seller_keypair)
        log.info(f"Built create tx for holding account {escrow} "
                 f"(buyer={buyer_address}, hashlock={hashlock[:16]}...)")
        return tx

    # =========================================================================
    # Deposit
    # =========================================================================

    def deposit_tx(self, seller_account: AccountState, seller_keypair: Keypair,
                   holding_address: str, amount: int) -> TransactionEnvelope:
        """Seller deposits the swap amount into the holding account."""
        _require_account("seller", seller_account)
        _require_signer("seller", seller_keypair)
        if not holding_address:
            raise ConstructionError("holding account address is required")

        tx = self._build(seller_account, payment_op(holding_address, amount))
        tx.sign(seller_keypair)
        log.info(f"Built deposit tx: {amount} stroops -> {holding_address}")
        return tx

    # =========================================================================
    # Withdraw
    # =========================================================================

    def withdraw_tx(self, holding_account: AccountState, buyer_keypair: Keypair,
                    preimage: str, amount: int) -> TransactionEnvelope:
        """
        Buyer withdraws from the holding account.

        The preimage x is attached as the hash(x) signature, so submitting
        this transaction publishes x on the ledger.
        """
        _require_account("holding", holding_account)
        _require_signer("buyer", buyer_keypair)
        if not preimage:
            raise ConstructionError("preimage is required")
        try:
            bytes.fromhex(preimage)
        except (ValueError, TypeError):
            raise ConstructionError(f"preimage is not hex: {preimage!r}")

        tx = self._build(holding_account, payment_op(buyer_keypair.public_key, amount))
        tx.sign(buyer_keypair)
        tx.sign_hashx(preimage)
        log.info(f"Built withdraw tx: {amount} stroops {holding_account.account_id} -> "
                 f"{buyer_keypair.public_key}")
        return tx

    # =========================================================================
    # Refund
    # =========================================================================

    def refund_tx(self, holding_account: AccountState, buyer_keypair: Keypair,
                  seller_address: str, locktime: int, amount: int) -> TransactionEnvelope:
        """
        Buyer pre-signs the seller's refund.

        Valid only from `locktime` on; the seller adds their signature to
        reach the threshold. Built before the seller deposits, so the seller
        is covered if the buyer never withdraws.
        """
        _require_account("holding", holding_account)
        _require_signer("buyer", buyer_keypair)
        if not seller_address:
            raise ConstructionError("seller address is required")
        if locktime is None or isinstance(locktime, bool) or not isinstance(locktime, int) or locktime <= 0:
            raise ConstructionError(f"locktime must be a positive unix timestamp: {locktime!r}")

        tx = self._build(holding_account, payment_op(seller_address, amount), min_time=locktime)
        tx.sign(buyer_keypair)
        log.info(f"Built refund tx: {amount} stroops -> {seller_address}, minTime={locktime}")
        return tx

    def is_valid_refund_tx(self, tx: TransactionEnvelope, holding_address: str, seller_address: str,
                           buyer_address: str, locktime: int, amount: int) -> bool:
        """
        Seller-side check of a pre-signed refund before depositing.

        Source, single payment, lower time bound and the buyer's signature
        must all match what was agreed.
        """
        operations = tx.transaction.operations
        if source_of(tx) != holding_address or len(operations) != 1:
            return False
        op = operations[0]
        if not isinstance(op, Payment) or not op.asset.is_native():
            return False
        if op_source(op) not in (None, holding_address):
            return False
        if op_destination(op) != seller_address or op_amount(op) != amount:
            return False
        if min_time_of(tx) != locktime:
            return False

        buyer = Keypair.from_public_key(buyer_address)
        tx_hash = tx.hash()
        for sig in tx.signatures:
            if sig.signature_hint != buyer.signature_hint():
                continue
            try:
                buyer.verify(tx_hash, sig.signature)
            except BadSignatureError:
                continue
            return True
        return False

    # =========================================================================
    # Hand-off
    # =========================================================================

    def add_signature(self, tx: TransactionEnvelope, keypair: Keypair) -> TransactionEnvelope:
        """Co-sign a transaction received from the other party."""
        _require_signer("co-signer", keypair)
        try:
            tx.sign(keypair)
        except SignatureExistError:
            log.debug(f"{keypair.public_key} already signed {tx.hash_hex()[:16]}...")
        return tx

    def load_transaction(self, envelope_xdr: str) -> TransactionEnvelope:
        """Decode a base64 envelope handed over by the other party."""
        return decode_envelope(envelope_xdr, self.network_passphrase)

    @staticmethod
    def extract_preimage(tx: TransactionEnvelope, hashlock: str) -> Optional[str]:
        """
        Recover x from a withdraw transaction.

        Args:
            hashlock: SHA256(x) as hex or as an X... signer key

        Returns:
            Preimage hex, or None if no signature hashes to the hashlock

        Raises:
            ConstructionError: hashlock missing or malformed
        """
        digest = hashlock_digest(hashlock)
        for sig in tx.signatures:
            if hashlib.sha256(sig.signature).digest() == digest:
                return sig.signature.hex()
        return None
