#!/usr/bin/env python3
"""
Escrow Swap E2E Tests (local ledger)

Runs complete swaps through SwapExecutor against LocalLedger:
1. Happy path: create, verify, pre-sign refund, deposit, withdraw
2. Preimage reveal picked up by the watcher
3. Refund after locktime
4. Refund before locktime rejected
5. Withdraw with the wrong preimage rejected
6. Withdraw and refund mutually exclusive
7. Neither party can drain the escrow alone
8. Escrow with an active master key rejected
9. Escrow keeps its minimum balance after paying out

Usage:
    python -m pytest tests/test_swap_e2e.py
"""

import sys
import os
import threading
import unittest

from stellar_sdk import Keypair, TransactionBuilder, TransactionEnvelope

# Add SDK to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xcat.core import generate_secret, escrow_min_balance, escrow_starting_balance
from xcat.errors import InvalidLayoutError, SubmissionError
from xcat.stellar.account import AccountState
from xcat.stellar.operations import (
    create_account_op, ed25519_signer, hashx_signer, payment_op, set_options_op,
)
from xcat.chains.local import LocalLedger
from xcat.htlc.escrow import EscrowSpec
from xcat.swap.executor import SwapExecutor
from xcat.swap.watcher import SwapWatcher, WatcherConfig

NOW = 1_700_000_000
XLM = 10_000_000
AMOUNT = 100 * XLM
LOCKTIME = NOW + 3600


class SwapFixture(unittest.TestCase):

    def setUp(self):
        self.ledger = LocalLedger(close_time=NOW)
        self.executor = SwapExecutor(self.ledger)

        self.seller = Keypair.random()
        self.buyer = Keypair.random()
        self.escrow = Keypair.random()
        self.ledger.fund(self.seller.public_key, 1000 * XLM)
        self.ledger.fund(self.buyer.public_key, 10 * XLM)

        self.secret, self.hashlock = generate_secret()

    @property
    def holding(self) -> str:
        return self.escrow.public_key

    def build(self, account: AccountState, *operations, signers=()) -> TransactionEnvelope:
        builder = TransactionBuilder(account.to_sdk_account(), self.ledger.network_passphrase)
        for op in operations:
            builder.append_operation(op)
        builder.add_time_bounds(0, 0)
        tx = builder.build()
        for kp in signers:
            tx.sign(kp)
        return tx

    def create(self):
        return self.executor.create_holding_account(
            self.escrow, self.seller, self.buyer.public_key, self.hashlock)

    def setup_swap(self):
        """Create, pre-sign refund, deposit. Returns the pre-signed refund."""
        self.create()
        refund = self.executor.prepare_refund(
            self.buyer, self.holding, self.seller.public_key, self.hashlock, LOCKTIME, AMOUNT)
        self.executor.deposit(self.seller, self.holding, AMOUNT)
        return refund

    def assertRejected(self, code, fn, *args):
        with self.assertRaises(SubmissionError) as ctx:
            fn(*args)
        codes = ctx.exception.result_codes
        self.assertIn(code, [codes.get("transaction")] + list(codes.get("operations", [])))


class TestHoldingAccountCreation(SwapFixture):

    def test_created_account_is_canonical(self):
        self.create()
        self.assertTrue(self.executor.verify_holding_account(
            self.holding, self.seller.public_key, self.buyer.public_key, self.hashlock))

        account = self.ledger.load_account(self.holding)
        self.assertEqual(account.balance, escrow_starting_balance(self.ledger.base_reserve))
        self.assertEqual(account.master_weight, 0)

    def test_escrow_funded_above_min_balance_by_one_fee(self):
        self.create()
        self.assertEqual(self.ledger.min_balance_of(self.holding),
                         escrow_min_balance(self.ledger.base_reserve))
        self.assertEqual(self.ledger.balance_of(self.holding) - self.ledger.min_balance_of(self.holding),
                         self.ledger.base_fee)

    def test_seller_pays_fee_and_reserve(self):
        self.create()
        expected = 1000 * XLM - escrow_starting_balance(self.ledger.base_reserve) - 4 * 100
        self.assertEqual(self.ledger.balance_of(self.seller.public_key), expected)

    def test_verify_before_creation_is_false(self):
        self.assertFalse(self.executor.verify_holding_account(
            self.holding, self.seller.public_key, self.buyer.public_key, self.hashlock))

    def test_verify_with_other_hashlock_is_false(self):
        self.create()
        _, other = generate_secret()
        self.assertFalse(EscrowSpec(self.ledger).is_valid_holding_account(
            self.holding, self.seller.public_key, self.buyer.public_key, other))

    def test_verify_with_other_depositor_is_false(self):
        self.create()
        self.assertFalse(self.executor.verify_holding_account(
            self.holding, Keypair.random().public_key, self.buyer.public_key, self.hashlock))

    def test_manual_escrow_with_master_weight_rejected(self):
        tx = self.build(
            self.ledger.load_account(self.seller.public_key),
            create_account_op(self.holding, escrow_starting_balance(self.ledger.base_reserve)),
            set_options_op(signer=ed25519_signer(self.buyer.public_key, 1), source=self.holding),
            set_options_op(signer=ed25519_signer(self.seller.public_key, 1), source=self.holding),
            set_options_op(
                signer=hashx_signer(self.hashlock, 1),
                master_weight=1, low_threshold=2, med_threshold=2, high_threshold=2,
                source=self.holding,
            ),
            signers=(self.escrow, self.seller),
        )
        self.ledger.submit_transaction(tx)

        self.assertFalse(self.executor.verify_holding_account(
            self.holding, self.seller.public_key, self.buyer.public_key, self.hashlock))

    def test_escrow_cannot_be_created_twice(self):
        self.create()
        self.assertRejected("op_already_exists", self.create)

    def test_buyer_refuses_to_presign_for_bad_escrow(self):
        self.create()
        _, other = generate_secret()
        with self.assertRaises(InvalidLayoutError):
            self.executor.prepare_refund(
                self.buyer, self.holding, self.seller.public_key, other, LOCKTIME, AMOUNT)

    def test_seller_checks_presigned_refund(self):
        self.create()
        refund = self.executor.prepare_refund(
            self.buyer, self.holding, self.seller.public_key, self.hashlock, LOCKTIME, AMOUNT)
        self.assertTrue(self.executor.factory.is_valid_refund_tx(
            refund, self.holding, self.seller.public_key, self.buyer.public_key, LOCKTIME, AMOUNT))


class TestWithdraw(SwapFixture):

    def test_withdraw_pays_buyer(self):
        self.setup_swap()
        escrow_before = self.ledger.balance_of(self.holding)
        buyer_before = self.ledger.balance_of(self.buyer.public_key)

        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)

        self.assertEqual(self.ledger.balance_of(self.buyer.public_key), buyer_before + AMOUNT)
        self.assertEqual(self.ledger.balance_of(self.holding), escrow_before - AMOUNT - 100)

    def test_escrow_keeps_min_balance_after_withdraw(self):
        self.setup_swap()
        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)
        self.assertEqual(self.ledger.balance_of(self.holding), self.ledger.min_balance_of(self.holding))

    def test_withdraw_reveals_preimage(self):
        self.setup_swap()
        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)

        watcher = SwapWatcher(self.ledger)
        self.assertEqual(watcher.find_preimage(self.holding, self.hashlock), self.secret)

    def test_wrong_preimage_rejected(self):
        self.setup_swap()
        wrong, _ = generate_secret()
        self.assertRejected("tx_bad_auth", self.executor.withdraw,
                            self.buyer, self.holding, wrong, AMOUNT)
        self.assertEqual(self.ledger.balance_of(self.holding),
                         escrow_starting_balance(self.ledger.base_reserve) + AMOUNT)

    def test_withdraw_more_than_deposit_is_underfunded(self):
        self.setup_swap()
        self.assertRejected("op_underfunded", self.executor.withdraw,
                            self.buyer, self.holding, self.secret, AMOUNT + 1)

    def test_buyer_alone_cannot_withdraw(self):
        self.setup_swap()
        account = self.ledger.load_account(self.holding)
        tx = self.executor.factory.refund_tx(account, self.buyer, self.buyer.public_key, NOW, AMOUNT)
        self.assertRejected("tx_bad_auth", self.ledger.submit_transaction, tx)

    def test_seller_alone_cannot_withdraw(self):
        self.setup_swap()
        tx = self.build(self.ledger.load_account(self.holding),
                        payment_op(self.seller.public_key, AMOUNT), signers=(self.seller,))
        self.assertRejected("tx_bad_auth", self.ledger.submit_transaction, tx)

    def test_escrow_master_key_disabled(self):
        self.setup_swap()
        tx = self.build(self.ledger.load_account(self.holding),
                        payment_op(self.seller.public_key, AMOUNT), signers=(self.escrow,))
        self.assertRejected("tx_bad_auth", self.ledger.submit_transaction, tx)


class TestRefund(SwapFixture):

    def test_refund_after_locktime(self):
        refund = self.setup_swap()
        seller_before = self.ledger.balance_of(self.seller.public_key)

        self.ledger.set_time(LOCKTIME)
        self.executor.complete_refund(self.seller, refund)

        self.assertEqual(self.ledger.balance_of(self.seller.public_key), seller_before + AMOUNT)
        self.assertEqual(self.ledger.balance_of(self.holding), self.ledger.min_balance_of(self.holding))

    def test_refund_before_locktime_rejected(self):
        refund = self.setup_swap()
        self.ledger.set_time(LOCKTIME - 1)
        self.assertRejected("tx_too_early", self.executor.complete_refund, self.seller, refund)

    def test_refund_handed_over_as_envelope(self):
        refund = self.setup_swap()
        envelope = refund.to_xdr()

        received = self.executor.factory.load_transaction(envelope)
        self.ledger.advance_time(3600)
        result = self.executor.complete_refund(self.seller, received)
        self.assertTrue(result["successful"])

    def test_refund_without_seller_signature_rejected(self):
        refund = self.setup_swap()
        self.ledger.set_time(LOCKTIME)
        self.assertRejected("tx_bad_auth", self.ledger.submit_transaction, refund)


class TestMutualExclusion(SwapFixture):

    def test_refund_after_withdraw_fails(self):
        refund = self.setup_swap()
        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)

        self.ledger.set_time(LOCKTIME)
        self.assertRejected("tx_bad_seq", self.executor.complete_refund, self.seller, refund)

    def test_withdraw_after_refund_fails(self):
        refund = self.setup_swap()
        self.ledger.set_time(LOCKTIME)
        self.executor.complete_refund(self.seller, refund)

        # Escrow is down to its minimum balance; not even the fee is covered
        self.assertRejected("tx_insufficient_balance", self.executor.withdraw,
                            self.buyer, self.holding, self.secret, AMOUNT)

    def test_nothing_revealed_on_refund(self):
        refund = self.setup_swap()
        self.ledger.set_time(LOCKTIME)
        self.executor.complete_refund(self.seller, refund)

        watcher = SwapWatcher(self.ledger)
        self.assertIsNone(watcher.find_preimage(self.holding, self.hashlock))


class TestWatcher(SwapFixture):

    def test_wait_times_out_without_reveal(self):
        self.setup_swap()
        watcher = SwapWatcher(self.ledger, WatcherConfig(poll_interval=0.01, timeout=0.05))
        self.assertIsNone(watcher.wait_for_preimage(self.holding, self.hashlock))

    def test_wait_returns_preimage(self):
        self.setup_swap()
        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)
        watcher = SwapWatcher(self.ledger, WatcherConfig(poll_interval=0.01))
        self.assertEqual(watcher.wait_for_preimage(self.holding, self.hashlock, timeout=1), self.secret)

    def test_wait_sees_reveal_from_other_thread(self):
        self.setup_swap()
        watcher = SwapWatcher(self.ledger, WatcherConfig(poll_interval=0.01))

        timer = threading.Timer(0.05, self.executor.withdraw,
                                args=(self.buyer, self.holding, self.secret, AMOUNT))
        timer.start()
        try:
            self.assertEqual(watcher.wait_for_preimage(self.holding, self.hashlock, timeout=5),
                             self.secret)
        finally:
            timer.join()

    def test_poll_once_reports_and_unwatches(self):
        self.setup_swap()
        watcher = SwapWatcher(self.ledger)
        revealed = []
        watcher.on_preimage = lambda address, preimage: revealed.append((address, preimage))
        watcher.watch(self.holding, self.hashlock)

        self.assertEqual(watcher.poll_once(), {})
        self.executor.withdraw(self.buyer, self.holding, self.secret, AMOUNT)

        self.assertEqual(watcher.poll_once(), {self.holding: self.secret})
        self.assertEqual(revealed, [(self.holding, self.secret)])
        self.assertEqual(watcher.watched(), {})


if __name__ == "__main__":
    unittest.main()
