"""Decoding of ``terraform output -json`` payloads."""

from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any

from atar.lib.errors import OutputDecodeError
from atar.models.deployment import OutputSet


def stringify_value(value: Any) -> str:
    """Render an output value as a display string.

    Strings are returned verbatim; every other value becomes its compact JSON
    text, so nothing is lost, only re-typed.

    Example:
        >>> stringify_value("bar")
        'bar'
        >>> stringify_value({"b": 1, "a": [True, None]})
        '{"a":[true,null],"b":1}'
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def decode_outputs(raw: bytes | str) -> OutputSet:
    """Parse Terraform's output JSON into a read-only name -> string mapping.

    Entries whose wrapper object lacks a ``value`` field are omitted.

    Args:
        raw: stdout of ``terraform output -json``

    Returns:
        Read-only mapping of output names to display strings

    Raises:
        OutputDecodeError: If the payload is not a JSON object
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise OutputDecodeError(str(exc)) from exc

    if not isinstance(payload, dict):
        raise OutputDecodeError(
            f"expected a JSON object, got {type(payload).__name__}"
        )

    results: dict[str, str] = {}
    for name, wrapper in payload.items():
        if isinstance(wrapper, dict) and "value" in wrapper:
            results[name] = stringify_value(wrapper["value"])
    return MappingProxyType(results)
