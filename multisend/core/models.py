"""
multisend/core/models.py

MultiSend Data Model

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Units
    every amount is a Python int in the asset's minor unit (wei for the
    native asset). bool is not an amount.

CONTRACT 2 — Addresses
    0x-prefixed 20-byte hex, normalised to EIP-55 checksum form on entry.
    NATIVE_ASSET is the zero address and never a valid recipient.

CONTRACT 3 — Event chain
    causal_hash  = SHA-256(JCS(prev.to_chain_dict()))
    first record = GENESIS_HASH ("0" * 64)
    amounts are encoded as decimal strings inside chain/signing dicts

CONTRACT 4 — Event vocabulary
    EventRecord.name must be an EventName constant.
═══════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from eth_utils import is_address, to_checksum_address

from multisend.core.canonical import canonical_hash, canonicalize
from multisend.core.crypto import Ed25519KeyManager
from multisend.core.time import event_timestamp


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

ZERO_ADDRESS   = "0x" + "0" * 40
NATIVE_ASSET   = ZERO_ADDRESS
GENESIS_HASH   = "0" * 64

WEI_PER_ETHER  = 10 ** 18
MAX_RECIPIENTS = 200

# Highest flat fee the owner may configure: 0.1 native unit.
FEE_CEILING    = WEI_PER_ETHER // 10


# ─────────────────────────────────────────────────────────────
# Addresses
# ─────────────────────────────────────────────────────────────

def normalize_address(value: Any) -> str:
    """
    Return the EIP-55 checksum form of an address.

    Raises ValueError for anything that is not a 20-byte hex address
    (including mixed-case strings with a bad checksum).
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Not a valid address: {value!r}")
    return to_checksum_address(value)


def is_zero_address(address: str) -> bool:
    return int(address, 16) == 0


def address_from_int(n: int) -> str:
    """Deterministic address for small integers. Handy for fixtures and defaults."""
    return to_checksum_address("0x" + format(n, "040x"))


# ─────────────────────────────────────────────────────────────
# Event vocabulary
# ─────────────────────────────────────────────────────────────

class EventName:
    """Names of events the engine emits. Argument keys are camelCase."""
    MULTI_TRANSFER        = "MultiTransfer"
    MULTI_TOKEN_TRANSFER  = "MultiTokenTransfer"
    TRANSFER_FAILED       = "TransferFailed"
    TOKEN_TRANSFER_FAILED = "TokenTransferFailed"
    FEES_TOGGLED          = "FeesToggled"
    FLAT_FEE_UPDATED      = "FlatFeeUpdated"
    FEE_COLLECTOR_UPDATED = "FeeCollectorUpdated"
    WITHDRAWAL            = "Withdrawal"
    TOKEN_WITHDRAWAL      = "TokenWithdrawal"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    # Emitted by recipient hooks, not by the engine.
    HOOK_LOG              = "HookLog"


_VALID_EVENT_NAMES: Set[str] = {
    EventName.MULTI_TRANSFER,
    EventName.MULTI_TOKEN_TRANSFER,
    EventName.TRANSFER_FAILED,
    EventName.TOKEN_TRANSFER_FAILED,
    EventName.FEES_TOGGLED,
    EventName.FLAT_FEE_UPDATED,
    EventName.FEE_COLLECTOR_UPDATED,
    EventName.WITHDRAWAL,
    EventName.TOKEN_WITHDRAWAL,
    EventName.OWNERSHIP_TRANSFERRED,
    EventName.HOOK_LOG,
}


def _encode_value(value: Any) -> Any:
    # JCS numbers are IEEE doubles; wei amounts are not.
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    if isinstance(value, dict):
        if not all(isinstance(k, str) for k in value):
            raise TypeError("Event argument keys must be strings")
        return {k: _encode_value(v) for k, v in value.items()}
    raise TypeError(f"Unsupported event argument type: {type(value).__name__}")


def encode_event_args(name: str, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check an event at emission time. Returns the args in canonical form.

    Raises ValueError for an unknown event name and TypeError for an
    argument with no canonical form (floats, bytes, arbitrary objects).
    """
    if name not in _VALID_EVENT_NAMES:
        raise ValueError(f"Invalid event name '{name}'")
    return _encode_value(dict(args))


# ─────────────────────────────────────────────────────────────
# Engine configuration
# ─────────────────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """
    Persistent engine state.

    owner is fixed at construction. fee_collector, flat_fee and
    fees_enabled change only through the engine's admin operations.
    """
    owner:         str
    fee_collector: str
    flat_fee:      int  = 0
    fees_enabled:  bool = False

    def copy(self) -> "EngineConfig":
        return EngineConfig(
            owner=         self.owner,
            fee_collector= self.fee_collector,
            flat_fee=      self.flat_fee,
            fees_enabled=  self.fees_enabled,
        )


# ─────────────────────────────────────────────────────────────
# Per-call results
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransferOutcome:
    """Result of one attempted payout inside a batch."""
    recipient: str
    amount:    int
    succeeded: bool
    is_fee:    bool = False


@dataclass(frozen=True)
class LogEntry:
    """An event emitted during a call, not yet committed to the event log."""
    emitter: str
    name:    str
    args:    Dict[str, Any]


@dataclass
class EventRecord:
    """
    A committed event. The only entry type of the event log.

    Build with EventRecord.create(); sign with .sign(key_manager).
    """
    sequence:          int
    name:              str
    emitter:           str
    args:              Dict[str, Any]
    timestamp:         str
    causal_hash:       str
    signer_public_key: Optional[str] = None
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        entry:    LogEntry,
        sequence: int,
        prev:     Optional["EventRecord"] = None,
    ) -> "EventRecord":
        if entry.name not in _VALID_EVENT_NAMES:
            raise ValueError(
                f"Invalid event name '{entry.name}'. "
                f"Valid: {sorted(_VALID_EVENT_NAMES)}"
            )
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")
        return cls(
            sequence=    sequence,
            name=        entry.name,
            emitter=     entry.emitter,
            args=        dict(entry.args),
            timestamp=   event_timestamp(),
            causal_hash= cls.expected_causal_hash_from(prev),
        )

    # ── Canonical forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """All fields except signature. Public key is included when set."""
        return {
            "sequence":          self.sequence,
            "name":              self.name,
            "emitter":           self.emitter,
            "args":              _encode_value(self.args),
            "timestamp":         self.timestamp,
            "causal_hash":       self.causal_hash,
            "signer_public_key": self.signer_public_key,
        }

    def to_chain_dict(self) -> Dict[str, Any]:
        return self.to_signing_dict()

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_signing_dict()
        data["args"] = dict(self.args)
        data["signature"] = self.signature
        return data

    # ── Chain ─────────────────────────────────────────────────

    @staticmethod
    def expected_causal_hash_from(prev: Optional["EventRecord"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_chain_dict())

    def verify_chain(self, prev: Optional["EventRecord"]) -> bool:
        return self.causal_hash == self.expected_causal_hash_from(prev)

    # ── Signing ───────────────────────────────────────────────

    def sign(self, key_manager) -> "EventRecord":
        """Sign in place with an Ed25519KeyManager. Returns self."""
        self.signer_public_key = key_manager.public_key_hex
        self.signature = key_manager.sign(canonicalize(self.to_signing_dict()))
        return self

    def is_signed(self) -> bool:
        return bool(self.signature)

    def verify_signature(self) -> bool:
        if not self.signature or not self.signer_public_key:
            return False
        return Ed25519KeyManager.verify_detached(
            canonicalize(self.to_signing_dict()),
            self.signature,
            self.signer_public_key,
        )


@dataclass
class SettlementReceipt:
    """
    What a successful engine call returns.

    A call can succeed while some recipients received nothing. Check
    .failed (or the TransferFailed events) to detect partial delivery.
    """
    operation:      str
    sender:         str
    asset:          str = NATIVE_ASSET
    total_amount:   int = 0
    fee_amount:     int = 0
    recipient_count: int = 0
    per_recipient:  Optional[int] = None
    refund:         int = 0
    outcomes:       Tuple[TransferOutcome, ...] = ()
    events:         List[EventRecord] = field(default_factory=list)

    @property
    def failed(self) -> List[TransferOutcome]:
        return [o for o in self.outcomes if not o.succeeded and not o.is_fee]

    @property
    def delivered(self) -> int:
        return sum(o.amount for o in self.outcomes if o.succeeded and not o.is_fee)

    @property
    def fee_collected(self) -> bool:
        fee = [o for o in self.outcomes if o.is_fee]
        return bool(fee) and fee[0].succeeded

    def events_named(self, name: str) -> List[EventRecord]:
        return [e for e in self.events if e.name == name]
