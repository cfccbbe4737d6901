"""
MultiSend Ledger - append-only event log.

Committed engine events, hash-chained and optionally signed.
"""

from multisend.ledger.event_log import EventLog

__all__ = ["EventLog"]
