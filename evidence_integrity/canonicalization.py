"""
Canonical JSON Encoding for evidence metadata.

Deep-equal metadata objects must produce identical bytes regardless of the
order in which their keys were inserted, so that independent
re-computations of the metadata hash agree. The text is byte-compatible
with ``JSON.stringify`` over recursively sorted keys, which is how capture
clients serialize metadata before hashing it.
"""

import json
import math
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Union


def _utf16_key(key: str) -> bytes:
    return key.encode('utf-16-be', 'surrogatepass')


def normalize(value: Any) -> Any:
    """
    Recursively sort mapping keys, preserving array order.

    Pure function: the input is never mutated. Keys must be strings and are
    ordered by UTF-16 code units, the order ``Array.prototype.sort`` gives.

    Raises:
        TypeError: for keys that are not strings or values that JSON
            cannot represent
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    elif isinstance(value, Mapping):
        return _normalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _normalize_array(value)
    else:
        raise TypeError(f"Cannot canonicalize type: {type(value).__name__}")


def _normalize_object(obj: Mapping) -> Dict[str, Any]:
    for key in obj.keys():
        if not isinstance(key, str):
            raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
    return {k: normalize(obj[k]) for k in sorted(obj.keys(), key=_utf16_key)}


def _normalize_array(arr: Union[List, tuple]) -> List:
    return [normalize(item) for item in arr]


def format_number(value: Union[int, float]) -> str:
    """
    Render a number the way ECMAScript ``Number::toString`` does.

    ``1.0`` becomes ``1``, ``1e16`` becomes ``10000000000000000`` and
    ``1e-7`` stays ``1e-7``. Digits are the shortest round-trip form.

    Raises:
        ValueError: for NaN and Infinity
    """
    if isinstance(value, int):
        return str(int(value))
    if not math.isfinite(value):
        raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len("".join(str(d) for d in digit_tuple)) - len(digits)

    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        text = "0." + "0" * (-n) + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def _serialize(value: Any) -> str:
    if value is None:
        return "null"
    elif value is True:
        return "true"
    elif value is False:
        return "false"
    elif isinstance(value, (int, float)):
        return format_number(value)
    elif isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    elif isinstance(value, dict):
        return "{" + ",".join(f"{_serialize(k)}:{_serialize(v)}" for k, v in value.items()) + "}"
    else:
        return "[" + ",".join(_serialize(item) for item in value) + "]"


def canonicalize_str(obj: Any) -> str:
    """
    Convert an object to its canonical JSON text.

    Rules:
    - Object keys sorted recursively by UTF-16 code units
    - No whitespace between tokens
    - Non-ASCII characters kept as-is
    - Integral floats written without a fraction, other floats in
      shortest round-trip form with JavaScript exponent rules
    - NaN and Infinity rejected
    """
    return _serialize(normalize(obj))


def canonicalize(obj: Any) -> bytes:
    """Return canonical JSON as UTF-8 bytes."""
    return canonicalize_str(obj).encode('utf-8')
