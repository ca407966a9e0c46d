"""
Decoding of transaction envelopes exchanged between parties and read
back from the ledger.
"""

from typing import Optional

import xdrlib3
from stellar_sdk import FeeBumpTransactionEnvelope, TransactionBuilder, TransactionEnvelope

from ..errors import ConstructionError

# What a malformed base64 XDR string can raise while being unpacked
DECODE_ERRORS = (ValueError, TypeError, EOFError, xdrlib3.Error)


def decode_envelope(envelope_xdr: str, network_passphrase: str) -> TransactionEnvelope:
    """
    Decode a base64 envelope into a TransactionEnvelope.

    Fee bumps are unwrapped to the transaction they carry, whose hash and
    signatures are the ones the escrow protocol cares about.

    Raises:
        ConstructionError: not a decodable transaction envelope
    """
    if not envelope_xdr:
        raise ConstructionError("transaction envelope is required")
    try:
        envelope = TransactionBuilder.from_xdr(envelope_xdr, network_passphrase)
    except DECODE_ERRORS as e:
        raise ConstructionError(f"Invalid transaction envelope: {e}") from e
    if isinstance(envelope, FeeBumpTransactionEnvelope):
        return envelope.transaction.inner_transaction_envelope
    return envelope


def source_of(envelope: TransactionEnvelope) -> str:
    return envelope.transaction.source.account_id


def min_time_of(envelope: TransactionEnvelope) -> Optional[int]:
    """Lower time bound, or None if the transaction has none."""
    preconditions = envelope.transaction.preconditions
    if preconditions is None or preconditions.time_bounds is None:
        return None
    return preconditions.time_bounds.min_time
