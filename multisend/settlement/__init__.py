"""
MultiSend Settlement

Batch payouts from one payer to up to MAX_RECIPIENTS recipients:
- validation before any value moves (batch.py)
- one flat fee per call (fees.py)
- best-effort delivery, failures recorded as events (engine.py)
"""

from multisend.settlement.batch import EqualSplit, split_equal
from multisend.settlement.engine import MultiSendEngine, derive_engine_address

__all__ = [
    "EqualSplit",
    "MultiSendEngine",
    "derive_engine_address",
    "split_equal",
]
