"""
tradeescrow: Canonical JSON Encoding (RFC 8785, JCS)

Journal records and signed call requests are signed and chained over
these bytes and nothing else.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

import jcs


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON-primitive; trade amounts and timestamps are ints,
    statuses travel as their names.
    """
    return jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the RFC 8785 canonical form, lowercase hex (64 chars).

    Used for journal causal_hash chaining.
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()
