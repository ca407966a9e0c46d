"""
Swap Watcher for the xcat Stellar SDK.

Watches escrow accounts for the buyer's withdraw: its hash(x) signature is
the preimage, which the seller needs to claim on the other chain.

Runs blocking (wait_for_preimage) or as a background service.
"""

import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..core import verify_preimage
from ..errors import AccountNotFoundError, LedgerConnectionError
from ..htlc.transactions import SwapTransactionFactory
from ..stellar.envelope import source_of
from ..stellar.operations import hashlock_digest

log = logging.getLogger(__name__)


@dataclass
class WatcherConfig:
    """Watcher configuration."""
    poll_interval: float = 5.0       # seconds
    timeout: float = 3600.0          # wait_for_preimage default (seconds)
    history_limit: int = 50          # transactions fetched per poll


class SwapWatcher:
    """
    Polls escrow accounts for preimage reveals.

    Events:
    - on_preimage: (holding_address, preimage_hex) once x appears on the ledger
    """

    def __init__(self, client, config: WatcherConfig = None):
        self.client = client
        self.config = config or WatcherConfig()

        self.on_preimage: Optional[Callable[[str, str], None]] = None

        # holding_address -> hashlock
        self._watched: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def find_preimage(self, holding_address: str, hashlock: str) -> Optional[str]:
        """
        Scan the escrow's recent transactions once.

        Returns:
            Preimage hex, or None if x has not been revealed yet
        """
        hashlock = hashlock_digest(hashlock).hex()
        txs = self.client.get_account_transactions(holding_address, limit=self.config.history_limit)
        for tx in txs:
            if source_of(tx) != holding_address:
                continue
            preimage = SwapTransactionFactory.extract_preimage(tx, hashlock)
            if preimage and verify_preimage(preimage, hashlock):
                log.info(f"Preimage revealed on {holding_address}: {preimage[:16]}...")
                return preimage
        return None

    def wait_for_preimage(self, holding_address: str, hashlock: str,
                          timeout: float = None) -> Optional[str]:
        """
        Block until the preimage appears or the timeout passes.

        Connection errors and a not-yet-created escrow are retried until the
        timeout.

        Returns:
            Preimage hex, or None on timeout
        """
        timeout = self.config.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            try:
                preimage = self.find_preimage(holding_address, hashlock)
                if preimage:
                    return preimage
            except AccountNotFoundError:
                log.debug(f"Holding account {holding_address} not created yet")
            except LedgerConnectionError as e:
                log.warning(f"Watcher poll failed for {holding_address}: {e}")

            if time.monotonic() + self.config.poll_interval > deadline:
                log.info(f"No preimage on {holding_address} after {timeout}s")
                return None
            time.sleep(self.config.poll_interval)

    # =========================================================================
    # Background service
    # =========================================================================

    def watch(self, holding_address: str, hashlock: str):
        """Add an escrow to the background watch list (hex or X... hashlock)."""
        hashlock = hashlock_digest(hashlock).hex()
        with self._lock:
            self._watched[holding_address] = hashlock
        log.info(f"Watching {holding_address} for hashlock {hashlock[:16]}...")

    def unwatch(self, holding_address: str):
        with self._lock:
            self._watched.pop(holding_address, None)

    def watched(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._watched)

    def start(self):
        """Start watcher in background thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._watch_loop, daemon=True)
        self._thread.start()
        log.info("Swap watcher started")

    def stop(self):
        """Stop watcher."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
        log.info("Swap watcher stopped")

    def poll_once(self) -> Dict[str, str]:
        """
        Check every watched escrow once.

        Revealed escrows are dropped from the watch list and reported through
        on_preimage.

        Returns:
            {holding_address: preimage_hex} for escrows revealed in this pass
        """
        revealed = {}
        for holding_address, hashlock in self.watched().items():
            try:
                preimage = self.find_preimage(holding_address, hashlock)
            except (AccountNotFoundError, LedgerConnectionError) as e:
                log.debug(f"Skipping {holding_address} this round: {e}")
                continue
            if preimage:
                self.unwatch(holding_address)
                revealed[holding_address] = preimage
                if self.on_preimage:
                    self.on_preimage(holding_address, preimage)
        return revealed

    def _watch_loop(self):
        """Main watch loop."""
        while self._running:
            try:
                self.poll_once()
            except Exception as e:
                log.error(f"Watcher error: {e}")
            time.sleep(self.config.poll_interval)
