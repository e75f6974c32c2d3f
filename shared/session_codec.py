"""
Session snapshot codec.

Session snapshots travel gateway -> subgraph in the ``x-session-data`` header
and mutation proposals travel back in ``x-session-mutation``. Both are compact
JSON restricted to ASCII so they are valid header values, and both are size
bounded. ``decode(encode(s)) == s`` for every JSON-representable session.
"""

import json
import math
from typing import Any, Mapping, Optional, Union

from shared.errors import DecodeError, EncodeError
from shared.logging import get_logger
from shared.session_models import MutationProposal, SessionData

SESSION_HEADER = "x-session-data"
MUTATION_HEADER = "x-session-mutation"

DEFAULT_MAX_BYTES = 8192
# Containers nested deeper than this are rejected on both encode and decode.
MAX_DEPTH = 32

logger = get_logger("shared.session_codec")


def to_jsonable(value: Any, path: str = "$", depth: int = 1) -> Any:
    """Validate a JSON-like value and convert frozen containers to plain ones."""
    if isinstance(value, (Mapping, list, tuple)) and depth > MAX_DEPTH:
        raise EncodeError("Session value is nested too deeply", details={"path": path, "max_depth": MAX_DEPTH})
    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodeError("Session keys must be strings", details={"path": path, "key": repr(key)})
            result[key] = to_jsonable(item, f"{path}.{key}", depth + 1)
        return result
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item, f"{path}[{index}]", depth + 1) for index, item in enumerate(value)]
    if isinstance(value, float) and not math.isfinite(value):
        raise EncodeError("Non-finite numbers are not JSON", details={"path": path})
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise EncodeError(
        "Value is not JSON-representable",
        details={"path": path, "type": type(value).__name__},
    )


def _dumps(payload: Any, max_bytes: int) -> str:
    encoded = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True)
    if len(encoded) > max_bytes:
        raise EncodeError(
            "Encoded session exceeds header size limit",
            details={"size": len(encoded), "max_bytes": max_bytes},
        )
    return encoded


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _nesting_depth(value: Any) -> int:
    deepest = 0
    stack = [(value, 1)]
    while stack:
        item, depth = stack.pop()
        if isinstance(item, dict):
            children = item.values()
        elif isinstance(item, list):
            children = item
        else:
            continue
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in children)
    return deepest


def _loads(value: Union[str, bytes, None], max_bytes: int) -> Any:
    if value is None:
        raise DecodeError("Session header is missing")
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError as exc:
            raise DecodeError("Session header is not ASCII") from exc
    if len(value) > max_bytes:
        raise DecodeError("Session header exceeds size limit", details={"size": len(value)})
    try:
        payload = json.loads(value, parse_constant=_reject_constant)
    except ValueError as exc:
        raise DecodeError("Session header is not valid JSON", details={"error": str(exc)}) from exc
    except RecursionError as exc:
        raise DecodeError("Session header is nested too deeply", details={"max_depth": MAX_DEPTH}) from exc
    if _nesting_depth(payload) > MAX_DEPTH:
        raise DecodeError("Session header is nested too deeply", details={"max_depth": MAX_DEPTH})
    return payload


def encode(data: Mapping[str, Any], max_bytes: int = DEFAULT_MAX_BYTES) -> str:
    """Encode a session (plain or frozen) into a header-safe string."""
    if not isinstance(data, Mapping):
        raise EncodeError("Session must be a mapping", details={"type": type(data).__name__})
    return _dumps(to_jsonable(data), max_bytes)


def decode(value: Union[str, bytes, None], max_bytes: int = DEFAULT_MAX_BYTES) -> SessionData:
    """Decode a header produced by :func:`encode`; raises ``DecodeError``."""
    payload = _loads(value, max_bytes)
    if not isinstance(payload, dict):
        raise DecodeError("Session header must encode an object", details={"type": type(payload).__name__})
    return payload


def decode_or_empty(value: Optional[Union[str, bytes]], max_bytes: int = DEFAULT_MAX_BYTES) -> SessionData:
    """Decode a session header, degrading to an empty session.

    A missing header is normal (first contact); a corrupt one is logged.
    """
    if value is None or value == "" or value == b"":
        return {}
    try:
        return decode(value, max_bytes)
    except DecodeError as exc:
        logger.warning("Discarding undecodable session header", error=exc.message, details=exc.details)
        return {}


def encode_mutation(proposal: MutationProposal, max_bytes: int = DEFAULT_MAX_BYTES) -> str:
    """Encode a mutation proposal for the response carrier header."""
    return _dumps(to_jsonable(proposal.to_wire()), max_bytes)


def decode_mutation(value: Union[str, bytes, None], max_bytes: int = DEFAULT_MAX_BYTES) -> MutationProposal:
    """Decode a mutation carrier header; raises ``DecodeError``."""
    payload = _loads(value, max_bytes)
    try:
        return MutationProposal.from_wire(payload)
    except ValueError as exc:
        raise DecodeError("Malformed session mutation", details={"error": str(exc)}) from exc
