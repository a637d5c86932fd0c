from __future__ import annotations

import json

import pytest

from aegis_bridge import envelope as env
from aegis_bridge.errors import DecodingError, EncodingError


def _sample(op: env.Op = env.Op.PUSH) -> env.Envelope:
    bodies = {
        env.Op.PUSH: env.PushBody(selection="picked", context="a\n\nb", role="user"),
        env.Op.CMD: env.CommandBody(action="inject", text="hello", selector="textarea"),
        env.Op.STREAM: env.StreamBody(delta="tok"),
    }
    return env.Envelope(
        op=op,
        body=bodies[op],
        source=env.Source.AGENT,
        tab_ref="42",
        url="https://claude.ai/chat",
        provider="Claude",
        timestamp="2026-01-11T10:00:00.000Z",
        meta={"lang": "en", "tabTitle": "T", "nested": {"k": [1, 2]}},
    )


@pytest.mark.parametrize("op", list(env.Op))
def test_roundtrip_preserves_every_field(op: env.Op) -> None:
    original = _sample(op)
    assert env.decode(env.encode(original)) == original


def test_roundtrip_with_empty_meta_and_defaults() -> None:
    original = env.Envelope(op=env.Op.STREAM, body=env.StreamBody(delta=""))
    decoded = env.decode(env.encode(original))
    assert decoded == original
    assert decoded.meta == {}


def test_encode_emits_every_key_even_when_empty() -> None:
    wire = json.loads(env.encode(env.Envelope(op=env.Op.CMD, body=env.CommandBody(action="focus"))))
    assert set(wire) == {"v", "op", "src", "tab", "url", "provider", "ts", "body", "meta"}
    assert wire["src"] is None
    assert wire["provider"] is None
    assert wire["tab"] == ""
    assert wire["body"] == {"action": "focus", "text": None, "selector": None}


def test_encode_is_single_line() -> None:
    msg = _sample()
    msg.body = env.PushBody(selection="line1\nline2\u2028x", context="")
    text = env.encode(msg)
    assert "\n" not in text
    assert "\u2028" not in text


def test_encode_rejects_non_serializable_meta() -> None:
    msg = _sample()
    msg.meta = {"bad": object()}
    with pytest.raises(EncodingError):
        env.encode(msg)

    msg.meta = {"nan": float("nan")}
    with pytest.raises(EncodingError):
        env.encode(msg)


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "",
        "[1, 2]",
        '{"op": "PUSH", "body": {}}',
        '{"v": 1, "body": {}}',
        '{"v": 2, "op": "PUSH", "body": {}}',
        '{"v": "1", "op": "PUSH", "body": {}}',
        '{"v": true, "op": "PUSH", "body": {}}',
        '{"v": 1, "op": "PULL", "body": {}}',
        '{"v": 1, "op": "CMD"}',
        '{"v": 1, "op": "CMD", "body": {"text": "x"}}',
        '{"v": 1, "op": "STREAM", "body": {}}',
        '{"v": 1, "op": "STREAM", "body": {"delta": 5}}',
        '{"v": 1, "op": "STREAM", "body": "hi"}',
        '{"v": 1, "op": "STREAM", "body": {"delta": "x"}, "meta": []}',
        '{"v": 1, "op": "STREAM", "body": {"delta": "x"}, "src": "martian"}',
    ],
)
def test_decode_rejects_malformed(text: str) -> None:
    with pytest.raises(DecodingError):
        env.decode(text)


def test_decode_accepts_unknown_fields_and_minimal_frame() -> None:
    msg = env.decode('{"v": 1, "op": "STREAM", "tab": "42", "body": {"delta": "hi"}, "future": {"x": 1}}')
    assert msg.op is env.Op.STREAM
    assert msg.tab_ref == "42"
    assert msg.body == env.StreamBody(delta="hi")
    assert msg.source is None
    assert msg.meta == {}
    assert msg.url == ""


def test_decode_accepts_unknown_action() -> None:
    msg = env.decode('{"v": 1, "op": "CMD", "src": "owui", "tab": "7", "body": {"action": "explode"}}')
    assert isinstance(msg.body, env.CommandBody)
    assert msg.body.action == "explode"
    assert msg.source is env.Source.EXTERNAL


def test_decode_source_aliases_and_integer_tab() -> None:
    msg = env.decode(b'{"v": 1, "op": "STREAM", "src": "external", "tab": 9, "body": {"delta": "d"}}')
    assert msg.source is env.Source.EXTERNAL
    assert msg.tab_ref == "9"


def test_push_helper_builds_agent_capture() -> None:
    msg = env.push(selection="s", context="c", url="https://x.test", meta={"lang": "fr"}, timestamp="t")
    assert msg.op is env.Op.PUSH
    assert msg.source is env.Source.AGENT
    assert msg.tab_ref == ""
    assert msg.body == env.PushBody(selection="s", context="c", role="user")
    assert msg.meta == {"lang": "fr"}


def test_utc_timestamp_format() -> None:
    assert env.utc_timestamp(0) == "1970-01-01T00:00:00.000Z"
    assert env.utc_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
