"""Canonical JSON serialization.

JWS protected headers, JWS payloads and JWK thumbprints are all computed
over serialized bytes, so every producer in the package goes through
:func:`canonical_json` and nothing else.
"""

import json
from typing import Any


def canonical_json(value: Any) -> bytes:
    """Serialize a JSON-representable value to canonical UTF-8 bytes.

    Object keys are sorted lexicographically at every nesting level, array
    order is preserved, no whitespace is emitted between tokens and
    non-ASCII characters are written as UTF-8 rather than escaped.

    Args:
        value: Any value made of dicts, lists, strings, numbers, bools and None.

    Returns:
        The canonical encoding.
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
