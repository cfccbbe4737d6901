"""
MultiSend: Canonical JSON Encoding (RFC 8785 / JCS)

Event records are hashed and signed over their canonical form only.
Two records with the same content always produce the same bytes,
regardless of dict insertion order.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

import jcs


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Values must be JSON primitives. Event records pass their args through
    models._encode_value first (in EventRecord.to_signing_dict), which
    turns every int into a decimal string.
    """
    return jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the canonical form, lowercase hex (64 characters).

    Used for causal_hash chaining in the event log.
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()
