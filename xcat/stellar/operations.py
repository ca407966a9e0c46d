"""
Ledger operations used by the escrow protocol.

Operations are a closed set of tagged variants, all stellar_sdk classes:

    Operation = CreateAccount | SetOptions | Payment

The helpers below take stroop amounts and StrKey addresses, validate them
(ConstructionError) and build the SDK operation. Only the native asset is
supported.
"""

from enum import Enum
from typing import Optional, Union

from stellar_sdk import Asset, CreateAccount, Payment, SetOptions, Signer, SignerKey, StrKey
from stellar_sdk import Operation as SdkOperation
from stellar_sdk.signer_key import SignerKeyType

from ..errors import ConstructionError

MAX_WEIGHT = 255

Operation = Union[CreateAccount, SetOptions, Payment]


class SignerType(Enum):
    """Signer key types, valued as Horizon reports them."""
    ED25519 = "ed25519_public_key"
    PRE_AUTH_TX = "preauth_tx"
    SHA256_HASH = "sha256_hash"

    @property
    def key_type(self) -> SignerKeyType:
        return _SDK_KEY_TYPES[self]

    @classmethod
    def of(cls, signer: Signer) -> "SignerType":
        for signer_type, key_type in _SDK_KEY_TYPES.items():
            if key_type == signer.signer_key.signer_key_type:
                return signer_type
        raise ValueError(f"Unsupported signer key type: {signer.signer_key.signer_key_type!r}")


_SDK_KEY_TYPES = {
    SignerType.ED25519: SignerKeyType.SIGNER_KEY_TYPE_ED25519,
    SignerType.PRE_AUTH_TX: SignerKeyType.SIGNER_KEY_TYPE_PRE_AUTH_TX,
    SignerType.SHA256_HASH: SignerKeyType.SIGNER_KEY_TYPE_HASH_X,
}


def signer_key(signer: Signer) -> str:
    """StrKey (G..., T..., X...) of a signer."""
    return signer.signer_key.encoded_signer_key


def make_signer(signer_type: SignerType, key: str, weight: int) -> Signer:
    """Signer from a Horizon-style {type, key, weight} triple."""
    _require_weight("signer weight", weight)
    try:
        parsed = SignerKey.from_encoded_signer_key(key)
    except (ValueError, TypeError, IndexError) as e:
        raise ConstructionError(f"Invalid {signer_type.value} signer key: {key!r}") from e
    if parsed.signer_key_type != signer_type.key_type:
        raise ConstructionError(f"Invalid {signer_type.value} signer key: {key!r}")
    return Signer(parsed, weight)


def signer_to_dict(signer: Signer) -> dict:
    return {"type": SignerType.of(signer).value, "key": signer_key(signer), "weight": signer.weight}


def hashx_signer_key(hashlock: Optional[str]) -> str:
    """
    X... signer key for a hashlock.

    Accepts the hex SHA256 digest or an already encoded X... key.
    """
    if not hashlock:
        raise ConstructionError("hashlock is required")
    if not isinstance(hashlock, str):
        raise ConstructionError(f"hashlock must be a string: {hashlock!r}")
    if StrKey.is_valid_sha256_hash(hashlock):
        return hashlock
    try:
        digest = bytes.fromhex(hashlock)
    except ValueError:
        raise ConstructionError(f"hashlock is not hex: {hashlock!r}")
    if len(digest) != 32:
        raise ConstructionError(f"hashlock must be 32 bytes, got {len(digest)}")
    return StrKey.encode_sha256_hash(digest)


def hashlock_digest(hashlock: Optional[str]) -> bytes:
    """Raw 32-byte digest of a hex or X... hashlock."""
    return StrKey.decode_sha256_hash(hashx_signer_key(hashlock))


def ed25519_signer(address: str, weight: int) -> Signer:
    _require_account_id("signer", address)
    _require_weight("signer weight", weight)
    return Signer.ed25519_public_key(address, weight)


def hashx_signer(hashlock: str, weight: int) -> Signer:
    _require_weight("signer weight", weight)
    return Signer.sha256_hash(hashx_signer_key(hashlock), weight)


# =============================================================================
# Validation
# =============================================================================

def _require_account_id(name: str, address: Optional[str]):
    if not address:
        raise ConstructionError(f"{name} is required")
    if not isinstance(address, str) or not StrKey.is_valid_ed25519_public_key(address):
        raise ConstructionError(f"{name} is not a valid account id: {address!r}")


def _require_amount(name: str, amount: Optional[int]):
    if amount is None:
        raise ConstructionError(f"{name} is required")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ConstructionError(f"{name} must be an integer number of stroops: {amount!r}")
    if amount <= 0:
        raise ConstructionError(f"{name} must be positive: {amount}")


def _require_weight(name: str, value: Optional[int]):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_WEIGHT:
        raise ConstructionError(f"{name} must be in [0, {MAX_WEIGHT}]: {value!r}")


# =============================================================================
# Operations
# =============================================================================

def create_account_op(destination: str, starting_balance: int,
                      source: Optional[str] = None) -> CreateAccount:
    """Create and fund a new account with `starting_balance` stroops."""
    _require_account_id("destination", destination)
    _require_amount("starting_balance", starting_balance)
    if source is not None:
        _require_account_id("source", source)
    return CreateAccount(destination, SdkOperation.from_xdr_amount(starting_balance), source=source)


def payment_op(destination: str, amount: int, source: Optional[str] = None) -> Payment:
    """Native payment of `amount` stroops."""
    _require_account_id("destination", destination)
    _require_amount("amount", amount)
    if source is not None:
        _require_account_id("source", source)
    return Payment(destination, Asset.native(), SdkOperation.from_xdr_amount(amount), source=source)


def set_options_op(signer: Optional[Signer] = None, master_weight: Optional[int] = None,
                   low_threshold: Optional[int] = None, med_threshold: Optional[int] = None,
                   high_threshold: Optional[int] = None, source: Optional[str] = None) -> SetOptions:
    """Signer, master weight and threshold changes."""
    if signer is not None and not isinstance(signer, Signer):
        raise ConstructionError(f"Invalid signer: {signer!r}")
    _require_weight("master_weight", master_weight)
    _require_weight("low_threshold", low_threshold)
    _require_weight("med_threshold", med_threshold)
    _require_weight("high_threshold", high_threshold)
    if all(v is None for v in (signer, master_weight, low_threshold, med_threshold, high_threshold)):
        raise ConstructionError("SetOptions requires at least one option")
    if source is not None:
        _require_account_id("source", source)
    return SetOptions(
        master_weight=master_weight,
        low_threshold=low_threshold,
        med_threshold=med_threshold,
        high_threshold=high_threshold,
        signer=signer,
        source=source,
    )


def op_amount(op: Operation) -> int:
    """Stroop amount moved by a CreateAccount or Payment."""
    if isinstance(op, CreateAccount):
        return SdkOperation.to_xdr_amount(op.starting_balance)
    if isinstance(op, Payment):
        return SdkOperation.to_xdr_amount(op.amount)
    raise TypeError(f"{type(op).__name__} moves no funds")


def op_source(op: Operation) -> Optional[str]:
    return op.source.account_id if op.source is not None else None


def op_destination(op: Operation) -> str:
    if isinstance(op, Payment):
        return op.destination.account_id
    return op.destination
