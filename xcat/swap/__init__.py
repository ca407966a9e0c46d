"""
Swap coordination for the xcat Stellar SDK.

Drives the escrow swap flows and watches for preimage reveals.
"""

from .executor import SwapExecutor
from .watcher import SwapWatcher, WatcherConfig

__all__ = ["SwapExecutor", "SwapWatcher", "WatcherConfig"]
