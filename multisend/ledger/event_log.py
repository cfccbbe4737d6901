"""
multisend/ledger/event_log.py

Event Log — append-only record of committed engine events.

append_all() MUST, in this exact order:
  1. Acquire lock
  2. Build each EventRecord with EventRecord.create(entry, sequence, prev),
     chaining each to the one built before it
  3. Encode it canonically, and sign it when a key manager is configured
  4. Assert chain invariants: sequence, causal_hash
  5. Append the whole batch and advance state

A batch that fails in steps 2-4 appends nothing. append() is a batch of one.

Only calls that complete reach the log: WorldState commits pending
events when the outermost call returns, and drops them on rollback.
"""

import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional

from multisend.core.canonical import canonicalize
from multisend.core.crypto import Ed25519KeyManager
from multisend.core.models import GENESIS_HASH, EventRecord, LogEntry


class EventLog:
    """
    Hash-chained, optionally signed event log.

    Thread-safe via internal lock (single-process only).
    """

    def __init__(self, key_manager: Optional[Ed25519KeyManager] = None) -> None:
        self.key_manager = key_manager

        self._lock:    threading.Lock    = threading.Lock()
        self._records: List[EventRecord] = []

    # ── Public API ────────────────────────────────────────────

    def append(self, entry: LogEntry) -> EventRecord:
        return self.append_all([entry])[0]

    def append_all(self, entries: Iterable[LogEntry]) -> List[EventRecord]:
        with self._lock:
            built: List[EventRecord] = []
            prev = self.last
            for entry in entries:
                prev = self._build(entry, len(self._records) + len(built), prev)
                built.append(prev)
            self._records.extend(built)
            return built

    @property
    def last(self) -> Optional[EventRecord]:
        return self._records[-1] if self._records else None

    def by_name(self, name: str) -> List[EventRecord]:
        return [r for r in self._records if r.name == name]

    def since(self, sequence: int) -> List[EventRecord]:
        """Records with sequence >= the given one."""
        return self._records[sequence:]

    def violations(self) -> List[str]:
        """
        Check the whole log from genesis.

        For each record verifies sequence, causal_hash against the previous
        record, and the signature when the record is signed or a key manager
        is configured. Returns a description per violation; empty if intact.
        """
        errors: List[str] = []
        prev = None
        for i, record in enumerate(list(self._records)):
            if record.sequence != i:
                errors.append(f"#{i}: sequence {record.sequence} != {i}")
            if not record.verify_chain(prev):
                errors.append(f"#{i}: causal_hash does not match previous record")
            if (record.is_signed() or self.key_manager is not None) \
                    and not record.verify_signature():
                errors.append(f"#{i}: invalid signature")
            if (self.key_manager is not None
                    and record.signer_public_key != self.key_manager.public_key_hex):
                errors.append(f"#{i}: signed by unexpected key")
            prev = record
        return errors

    def verify(self) -> bool:
        return not self.violations()

    def get_stats(self) -> Dict[str, Any]:
        last = self.last
        return {
            "records":          len(self._records),
            "next_sequence":    len(self._records),
            "last_causal_hash": last.causal_hash if last else GENESIS_HASH,
            "signed":           self.key_manager is not None,
            "signer":           self.key_manager.public_key_hex if self.key_manager else None,
        }

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(list(self._records))

    # ── Internal ──────────────────────────────────────────────

    def _build(
        self, entry: LogEntry, sequence: int, prev: Optional[EventRecord]
    ) -> EventRecord:
        record = EventRecord.create(entry, sequence=sequence, prev=prev)
        canonicalize(record.to_signing_dict())
        if self.key_manager is not None:
            record.sign(self.key_manager)

        if record.sequence != sequence:
            raise RuntimeError(
                f"Event log invariant violated: sequence mismatch: "
                f"expected={sequence}, got={record.sequence}"
            )
        if not record.verify_chain(prev):
            raise RuntimeError(
                "Event log invariant violated: causal_hash mismatch: "
                f"got=...{record.causal_hash[-12:]}"
            )

        return record
