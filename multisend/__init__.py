"""
multisend/__init__.py

MultiSend: batch settlement of native and token payouts.

One payer, up to 200 recipients, one atomic call, an optional flat fee.
Per-recipient delivery is best effort; failures are recorded as events
on a hash-chained, optionally signed event log.
"""

__version__ = "1.0.0"

from multisend.chain.world import ReceiveContext, WorldState
from multisend.core.crypto import Ed25519KeyManager
from multisend.core.exceptions import ExecutionReverted, MultiSendError, OutOfGasError
from multisend.core.models import (
    FEE_CEILING,
    MAX_RECIPIENTS,
    NATIVE_ASSET,
    EventName,
    EventRecord,
    SettlementReceipt,
    TransferOutcome,
)
from multisend.ledger.event_log import EventLog
from multisend.runtime.context import EngineSettings, RuntimeContext
from multisend.settlement.engine import MultiSendEngine
from multisend.tokens.memory import InMemoryTokenLedger
from multisend.tokens.web3_ledger import Web3TokenLedger

__all__ = [
    # Engine
    "MultiSendEngine",
    "SettlementReceipt",
    "TransferOutcome",
    # Platform
    "WorldState",
    "ReceiveContext",
    "EventLog",
    "EventRecord",
    "EventName",
    "Ed25519KeyManager",
    # Tokens
    "InMemoryTokenLedger",
    "Web3TokenLedger",
    # Runtime
    "EngineSettings",
    "RuntimeContext",
    # Errors
    "MultiSendError",
    "ExecutionReverted",
    "OutOfGasError",
    # Constants
    "FEE_CEILING",
    "MAX_RECIPIENTS",
    "NATIVE_ASSET",
]
