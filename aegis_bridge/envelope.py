"""Wire envelope exchanged with the external bridge process.

One envelope per WebSocket text frame, encoded as single-line JSON. Every key
is always emitted so the remote side sees a stable shape:

    {"v": 1, "op": "PUSH", "src": "ext", "tab": "42", "url": "...",
     "provider": "Claude", "ts": "2026-01-01T00:00:00.000Z",
     "body": {...}, "meta": {...}}

Decoding is syntactic only: unknown top-level keys are ignored, unknown CMD
actions are accepted (the page agent rejects them later).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from .errors import DecodingError, EncodingError

PROTOCOL_VERSION = 1
SUPPORTED_VERSIONS = frozenset({PROTOCOL_VERSION})


class Op(str, Enum):
    PUSH = "PUSH"
    CMD = "CMD"
    STREAM = "STREAM"


class Source(str, Enum):
    AGENT = "ext"
    EXTERNAL = "owui"


_SOURCE_ALIASES = {
    "ext": Source.AGENT,
    "agent": Source.AGENT,
    "owui": Source.EXTERNAL,
    "external": Source.EXTERNAL,
}

# Actions the page agent knows how to apply. The codec does not enforce this.
KNOWN_ACTIONS = frozenset({"inject", "replace", "focus", "click"})


@dataclass
class PushBody:
    selection: str = ""
    context: str = ""
    role: str = "user"

    def to_wire(self) -> dict[str, Any]:
        return {"selection": self.selection, "context": self.context, "role": self.role}


@dataclass
class CommandBody:
    action: str
    text: str | None = None
    selector: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {"action": self.action, "text": self.text, "selector": self.selector}


@dataclass
class StreamBody:
    delta: str

    def to_wire(self) -> dict[str, Any]:
        return {"delta": self.delta}


Body = Union[PushBody, CommandBody, StreamBody]

_BODY_TYPES: dict[Op, type] = {Op.PUSH: PushBody, Op.CMD: CommandBody, Op.STREAM: StreamBody}


def utc_timestamp(now_ms: int | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    if now_ms is None:
        dt = datetime.now(timezone.utc)
    else:
        dt = datetime.fromtimestamp(now_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


@dataclass
class Envelope:
    op: Op
    body: Body
    version: int = PROTOCOL_VERSION
    source: Source | None = None
    tab_ref: str = ""
    url: str = ""
    provider: str | None = None
    timestamp: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "v": self.version,
            "op": self.op.value,
            "src": self.source.value if self.source is not None else None,
            "tab": self.tab_ref,
            "url": self.url,
            "provider": self.provider,
            "ts": self.timestamp,
            "body": self.body.to_wire(),
            "meta": dict(self.meta),
        }


def push(
    *,
    selection: str,
    context: str,
    url: str = "",
    provider: str | None = None,
    meta: dict[str, Any] | None = None,
    timestamp: str | None = None,
) -> Envelope:
    return Envelope(
        op=Op.PUSH,
        body=PushBody(selection=selection, context=context, role="user"),
        source=Source.AGENT,
        url=url,
        provider=provider,
        timestamp=timestamp if timestamp is not None else utc_timestamp(),
        meta=dict(meta or {}),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Encode
# ─────────────────────────────────────────────────────────────────────────────


def encode(envelope: Envelope) -> str:
    try:
        wire = envelope.to_wire()
    except AttributeError as exc:
        raise EncodingError(f"malformed envelope: {exc}") from exc
    try:
        # ensure_ascii keeps U+2028/U+2029 escaped, so the frame stays single-line.
        return json.dumps(wire, ensure_ascii=True, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"envelope not JSON-serializable: {exc}") from exc


# ─────────────────────────────────────────────────────────────────────────────
# Decode
# ─────────────────────────────────────────────────────────────────────────────


def _str_field(obj: dict[str, Any], key: str, *, default: str | None, required: bool = False) -> str | None:
    if key not in obj or obj[key] is None:
        if required:
            raise DecodingError(f"missing required field: {key}")
        return default
    val = obj[key]
    if not isinstance(val, str):
        raise DecodingError(f"field {key!r} must be a string")
    return val


def _decode_body(op: Op, raw: Any) -> Body:
    if not isinstance(raw, dict):
        raise DecodingError(f"{op.value} body must be an object")
    if op is Op.PUSH:
        return PushBody(
            selection=_str_field(raw, "selection", default="") or "",
            context=_str_field(raw, "context", default="") or "",
            role=_str_field(raw, "role", default="user") or "user",
        )
    if op is Op.CMD:
        action = _str_field(raw, "action", default=None, required=True)
        return CommandBody(
            action=str(action),
            text=_str_field(raw, "text", default=None),
            selector=_str_field(raw, "selector", default=None),
        )
    delta = _str_field(raw, "delta", default=None, required=True)
    return StreamBody(delta=str(delta))


def from_wire(obj: Any) -> Envelope:
    if not isinstance(obj, dict):
        raise DecodingError("envelope must be a JSON object")

    if "v" not in obj:
        raise DecodingError("missing required field: v")
    version = obj["v"]
    # bool is an int subclass; true/false is not a version.
    if isinstance(version, bool) or not isinstance(version, int) or version not in SUPPORTED_VERSIONS:
        raise DecodingError(f"unsupported protocol version: {version!r}")

    if "op" not in obj:
        raise DecodingError("missing required field: op")
    try:
        op = Op(obj["op"])
    except (ValueError, TypeError) as exc:
        raise DecodingError(f"unknown op: {obj['op']!r}") from exc

    if "body" not in obj:
        raise DecodingError("missing required field: body")
    body = _decode_body(op, obj["body"])

    raw_src = _str_field(obj, "src", default=None)
    source = None
    if raw_src is not None:
        source = _SOURCE_ALIASES.get(raw_src.strip().lower())
        if source is None:
            raise DecodingError(f"unknown src: {raw_src!r}")

    meta = obj.get("meta")
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise DecodingError("field 'meta' must be an object")

    raw_tab = obj.get("tab")
    if isinstance(raw_tab, int) and not isinstance(raw_tab, bool):
        # Browser tab ids are integers; some peers send them unquoted.
        tab_ref = str(raw_tab)
    else:
        tab_ref = _str_field(obj, "tab", default="") or ""

    return Envelope(
        op=op,
        body=body,
        version=version,
        source=source,
        tab_ref=tab_ref,
        url=_str_field(obj, "url", default="") or "",
        provider=_str_field(obj, "provider", default=None),
        timestamp=_str_field(obj, "ts", default="") or "",
        meta={str(k): v for k, v in meta.items()},
    )


def decode(text: str | bytes) -> Envelope:
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodingError(f"frame is not UTF-8: {exc}") from exc
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise DecodingError(f"frame is not valid JSON: {exc}") from exc
    return from_wire(obj)


__all__ = [
    "PROTOCOL_VERSION",
    "KNOWN_ACTIONS",
    "Op",
    "Source",
    "PushBody",
    "CommandBody",
    "StreamBody",
    "Envelope",
    "push",
    "utc_timestamp",
    "encode",
    "decode",
    "from_wire",
]
