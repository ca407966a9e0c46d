"""
Swap Executor for the xcat Stellar SDK.

Load -> build -> sign -> submit flows for both sides of an escrow swap.

Swap Flow (seller sells XLM for the buyer's asset on another chain):
1. Buyer generates x, shares hashlock H = SHA256(x)
2. Seller creates the escrow (signers: H, buyer, seller)
3. Buyer verifies the escrow, pre-signs the refund (minTime = locktime)
4. Seller checks the refund and deposits the swap amount
5. Buyer withdraws, revealing x on the ledger
6. Seller reads x and claims on the other chain
   - or, after locktime, co-signs and submits the refund
"""

import logging
from typing import Dict, Any

from stellar_sdk import Keypair, TransactionEnvelope

from ..htlc.escrow import EscrowSpec
from ..htlc.transactions import SwapTransactionFactory
from ..stellar.envelope import source_of

log = logging.getLogger(__name__)


class SwapExecutor:
    """
    Drives escrow swaps against a ledger client.

    `client` is a HorizonClient or a LocalLedger. Submission failures
    propagate as SubmissionError; nothing is retried.
    """

    def __init__(self, client, factory: SwapTransactionFactory = None):
        self.client = client
        self.factory = factory or SwapTransactionFactory(client.network_passphrase)
        self.escrow = EscrowSpec(client)

    # =========================================================================
    # Seller (depositor)
    # =========================================================================

    def create_holding_account(self, escrow_keypair: Keypair, seller_keypair: Keypair,
                               buyer_address: str, hashlock: str) -> Dict[str, Any]:
        """
        Create and configure the escrow account.

        Returns:
            Submission result ({"hash", "ledger", "successful"})
        """
        seller_account = self.client.load_account(seller_keypair.public_key)
        base_reserve = self.client.get_base_reserve()

        tx = self.factory.create_holding_account_tx(
            escrow_keypair, seller_keypair, seller_account,
            buyer_address, hashlock, base_reserve,
        )
        result = self.client.submit_transaction(tx)
        log.info(f"Holding account {escrow_keypair.public_key} created in ledger {result.get('ledger')}")
        return result

    def deposit(self, seller_keypair: Keypair, holding_address: str, amount: int) -> Dict[str, Any]:
        """Fund the escrow with the swap amount."""
        seller_account = self.client.load_account(seller_keypair.public_key)
        tx = self.factory.deposit_tx(seller_account, seller_keypair, holding_address, amount)
        result = self.client.submit_transaction(tx)
        log.info(f"Deposited {amount} stroops into {holding_address}")
        return result

    def complete_refund(self, seller_keypair: Keypair, refund_tx: TransactionEnvelope) -> Dict[str, Any]:
        """Co-sign the buyer's pre-signed refund and submit it."""
        self.factory.add_signature(refund_tx, seller_keypair)
        result = self.client.submit_transaction(refund_tx)
        log.info(f"Refund {result.get('hash', '')[:16]}... applied for {source_of(refund_tx)}")
        return result

    # =========================================================================
    # Buyer (withdrawer)
    # =========================================================================

    def verify_holding_account(self, holding_address: str, depositor_address: str,
                               withdrawer_address: str, hashlock: str) -> bool:
        """True if the escrow exists with the canonical layout."""
        return self.escrow.is_valid_holding_account(
            holding_address, depositor_address, withdrawer_address, hashlock,
        )

    def prepare_refund(self, buyer_keypair: Keypair, holding_address: str, seller_address: str,
                       hashlock: str, locktime: int, amount: int) -> TransactionEnvelope:
        """
        Pre-sign the seller's refund.

        Only signs for an escrow that passes verification, since the
        signature is the buyer's half of the refund authority.
        """
        holding_account = self.escrow.check_holding_account(
            holding_address, seller_address, buyer_keypair.public_key, hashlock,
        )
        return self.factory.refund_tx(holding_account, buyer_keypair, seller_address, locktime, amount)

    def withdraw(self, buyer_keypair: Keypair, holding_address: str,
                 preimage: str, amount: int) -> Dict[str, Any]:
        """Claim the escrow. Publishes the preimage."""
        holding_account = self.client.load_account(holding_address)
        tx = self.factory.withdraw_tx(holding_account, buyer_keypair, preimage, amount)
        result = self.client.submit_transaction(tx)
        log.info(f"Withdrew {amount} stroops from {holding_address} (preimage revealed)")
        return result

