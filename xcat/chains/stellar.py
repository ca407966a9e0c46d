"""
Stellar Horizon client for the xcat SDK.

Provides the ledger operations the escrow protocol consumes:
- Account lookup (found / not found / failed)
- Latest ledger parameters (base reserve)
- Transaction submission
- Transaction history of an account (for preimage reveals)
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, List

import httpx
from stellar_sdk import Network, Server, TransactionEnvelope
from stellar_sdk.exceptions import BadRequestError, BaseRequestError, NotFoundError

from ..errors import AccountNotFoundError, ConstructionError, LedgerConnectionError, SubmissionError
from ..stellar.account import AccountState
from ..stellar.envelope import decode_envelope
from .http import HttpxClient

log = logging.getLogger(__name__)


PUBLIC_NETWORK_PASSPHRASE = Network.PUBLIC_NETWORK_PASSPHRASE
TESTNET_NETWORK_PASSPHRASE = Network.TESTNET_NETWORK_PASSPHRASE

# Horizon endpoints
NETWORKS = {
    "public": {
        "horizon_url": "https://horizon.stellar.org",
        "passphrase": PUBLIC_NETWORK_PASSPHRASE,
    },
    "testnet": {
        "horizon_url": "https://horizon-testnet.stellar.org",
        "passphrase": TESTNET_NETWORK_PASSPHRASE,
    },
}


@dataclass
class StellarConfig:
    """Stellar network configuration."""
    network: str = "testnet"            # testnet, public
    horizon_url: str = ""               # "" = default for network
    network_passphrase: str = ""        # "" = default for network
    timeout: float = 15.0               # HTTP timeout (seconds)

    def __post_init__(self):
        if self.network not in NETWORKS:
            raise ValueError(f"Unknown network: {self.network} (expected one of {sorted(NETWORKS)})")
        defaults = NETWORKS[self.network]
        self.horizon_url = (self.horizon_url or defaults["horizon_url"]).rstrip("/")
        self.network_passphrase = self.network_passphrase or defaults["passphrase"]

    @classmethod
    def from_env(cls) -> "StellarConfig":
        """Build from XCAT_NETWORK / XCAT_HORIZON_URL / XCAT_HTTP_TIMEOUT."""
        return cls(
            network=os.environ.get("XCAT_NETWORK", "testnet"),
            horizon_url=os.environ.get("XCAT_HORIZON_URL", ""),
            timeout=float(os.environ.get("XCAT_HTTP_TIMEOUT", 15.0)),
        )


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class AccountLookup:
    """
    Result of an account lookup.

    Callers branch on `status` instead of catching exception types:
    NOT_FOUND is an answer, ERROR carries the original fault.
    """
    address: str
    status: LookupStatus
    account: Optional[AccountState] = None
    error: Optional[Exception] = None

    @classmethod
    def found(cls, account: AccountState) -> "AccountLookup":
        return cls(account.account_id, LookupStatus.FOUND, account=account)

    @classmethod
    def not_found(cls, address: str) -> "AccountLookup":
        return cls(address, LookupStatus.NOT_FOUND)

    @classmethod
    def failed(cls, address: str, error: Exception) -> "AccountLookup":
        return cls(address, LookupStatus.ERROR, error=error)

    def unwrap(self) -> AccountState:
        """Return the account, or raise the not-found/original error."""
        if self.status == LookupStatus.FOUND:
            return self.account
        if self.status == LookupStatus.NOT_FOUND:
            raise AccountNotFoundError(self.address)
        raise self.error



class HorizonClient:
    """
    Horizon REST client on top of stellar_sdk.Server.

    Requests go through one httpx.Client per instance; use as a context
    manager or call close().
    """

    def __init__(self, config: StellarConfig = None, http: httpx.Client = None):
        self.config = config or StellarConfig()
        self.network_passphrase = self.config.network_passphrase
        self.server = Server(
            horizon_url=self.config.horizon_url,
            client=HttpxClient(http, timeout=self.config.timeout),
        )

    def close(self):
        self.server.close()

    def __enter__(self) -> "HorizonClient":
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def _connection_error(what: str, e: Exception) -> LedgerConnectionError:
        status = getattr(e, "status", None)
        detail = f"Horizon returned {status}" if status else f"Horizon request failed: {e}"
        log.error(f"{what}: {detail}")
        err = LedgerConnectionError(f"{detail} ({what})")
        err.__cause__ = e
        return err

    # =========================================================================
    # Accounts
    # =========================================================================

    def lookup_account(self, address: str) -> AccountLookup:
        """Fetch account state without raising for a missing account."""
        try:
            account = self.server.load_account(address)
        except NotFoundError:
            log.debug(f"Account {address} not found")
            return AccountLookup.not_found(address)
        except BaseRequestError as e:
            return AccountLookup.failed(address, self._connection_error(f"account {address}", e))
        except (KeyError, TypeError, ValueError) as e:
            return AccountLookup.failed(address, LedgerConnectionError(
                f"Malformed account record for {address}: {e}"
            ))

        try:
            return AccountLookup.found(AccountState.from_sdk_account(account))
        except (KeyError, TypeError, ValueError) as e:
            return AccountLookup.failed(address, LedgerConnectionError(
                f"Malformed account record for {address}: {e}"
            ))

    def load_account(self, address: str) -> AccountState:
        """Fetch account state; raises AccountNotFoundError if absent."""
        return self.lookup_account(address).unwrap()

    def get_account_transactions(self, address: str, limit: int = 50) -> List[TransactionEnvelope]:
        """Most recent transactions of an account (failed ones included)."""
        builder = self.server.transactions().for_account(address) \
            .include_failed(True).order(desc=True).limit(limit)
        try:
            data = builder.call()
        except NotFoundError:
            raise AccountNotFoundError(address)
        except BaseRequestError as e:
            raise self._connection_error(f"{address} transactions", e)
        except ValueError as e:
            raise LedgerConnectionError(f"Invalid JSON from Horizon for {address} transactions") from e

        txs = []
        for r in data.get("_embedded", {}).get("records", []):
            try:
                txs.append(decode_envelope(r["envelope_xdr"], self.network_passphrase))
            except (KeyError, ConstructionError) as e:
                log.debug(f"Skipping tx {r.get('hash', '?')[:16]}...: {e}")
        return txs

    # =========================================================================
    # Ledger
    # =========================================================================

    def get_base_reserve(self) -> int:
        """Base reserve (stroops) of the latest closed ledger."""
        try:
            data = self.server.ledgers().order(desc=True).limit(1).call()
        except BaseRequestError as e:
            raise self._connection_error("latest ledger", e)
        except ValueError as e:
            raise LedgerConnectionError("Invalid JSON from Horizon for latest ledger") from e
        try:
            record = data["_embedded"]["records"][0]
            return int(record["base_reserve_in_stroops"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise LedgerConnectionError(f"Malformed ledger record: {e}") from e

    # =========================================================================
    # Transactions
    # =========================================================================

    def submit_transaction(self, tx: TransactionEnvelope) -> Dict[str, Any]:
        """
        Submit a signed transaction.

        Returns:
            {"hash": "...", "ledger": ..., "successful": True}

        Raises:
            SubmissionError: ledger rejected the transaction (result codes attached)
            LedgerConnectionError: transport failure or unexpected response
        """
        tx_hash = tx.hash_hex()
        log.info(f"Submitting tx {tx_hash[:16]}... ({len(tx.transaction.operations)} ops, "
                 f"{len(tx.signatures)} sigs)")

        try:
            data = self.server.submit_transaction(tx, skip_memo_required_check=True)
        except BadRequestError as e:
            result_codes = (e.extras or {}).get("result_codes", {})
            log.error(f"Tx {tx_hash[:16]}... rejected: {result_codes}")
            raise SubmissionError(
                f"Transaction rejected: {result_codes or e.title or 'unknown'}",
                result_codes=result_codes,
                tx_hash=tx_hash,
            ) from e
        except BaseRequestError as e:
            raise self._connection_error(f"submitting tx {tx_hash}", e)
        except ValueError as e:
            raise LedgerConnectionError(f"Invalid JSON from Horizon submitting tx {tx_hash}") from e

        log.info(f"Tx {tx_hash[:16]}... included in ledger {data.get('ledger')}")
        return {
            "hash": data.get("hash", tx_hash),
            "ledger": data.get("ledger"),
            "successful": data.get("successful", True),
        }
