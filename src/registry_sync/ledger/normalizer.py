"""Event envelope normalization.

Live subscriptions and historical range queries hand back events in two
shapes: transaction metadata either sits under a nested ``log`` entry or
inline at the top level, and the hash may be named ``transactionHash`` or
``hash``. Everything here reduces both shapes to one canonical form.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from registry_sync.chain.source import EventKind


@dataclass(frozen=True)
class EventEnvelope:
    transaction_hash: str
    block_number: int


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def to_hex(value: Any) -> str:
    """Render bytes-like values as 0x-prefixed hex, pass strings through."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def to_int(value: Any) -> int:
    """Parse an integer that may arrive as int, decimal text or 0x hex."""
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def to_decimal_text(value: Any) -> str:
    """Canonical decimal text for an arbitrary-precision chain integer."""
    return str(to_int(value))


def normalize_address(address: Any) -> str:
    return to_hex(address).lower()


def normalize_envelope(raw: Any) -> EventEnvelope | None:
    """Extract ``(transaction_hash, block_number)`` from either envelope shape.

    Returns None when either field is missing so callers can skip the
    transfer record without treating the event as an error.
    """
    log = _field(raw, "log") or raw
    tx_hash = _field(log, "transactionHash") or _field(log, "hash")
    block_number = _field(log, "blockNumber")
    if not tx_hash or block_number is None:
        return None
    try:
        return EventEnvelope(
            transaction_hash=to_hex(tx_hash).lower(),
            block_number=to_int(block_number),
        )
    except (TypeError, ValueError):
        return None


def event_args(raw: Any, kind: EventKind) -> tuple[Any, ...]:
    """Positional arguments of a raw event, in contract declaration order."""
    args = _field(raw, "args")
    if args is None:
        raise ValueError(f"{kind.value} event carries no args")
    if isinstance(args, Mapping):
        return tuple(args[name] for name in kind.arg_names)
    values = tuple(args)
    if len(values) < len(kind.arg_names):
        raise ValueError(
            f"{kind.value} expects {len(kind.arg_names)} args, got {len(values)}"
        )
    return values[: len(kind.arg_names)]
