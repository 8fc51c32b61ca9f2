"""Tests for event decoding and SSE framing."""

import json

import pytest

from manimatic.events import (
    CompileFailed,
    EventDecodeError,
    EventKind,
    GenerateSucceeded,
    SSEDecoder,
    decode_event,
)


def test_sse_decoder_joins_multiline_data():
    decoder = SSEDecoder()
    assert decoder.feed("data: first") == []
    assert decoder.feed("data: second") == []
    assert decoder.feed("") == ["first\nsecond"]


def test_sse_decoder_ignores_comments_and_other_fields():
    decoder = SSEDecoder()
    lines = [": keep-alive", "event: message", "id: 7", "retry: 1000", "data:{\"a\":1}", ""]
    payloads = []
    for line in lines:
        payloads.extend(decoder.feed(line))
    assert payloads == ['{"a":1}']


def test_sse_decoder_blank_line_without_data_yields_nothing():
    decoder = SSEDecoder()
    assert decoder.feed("") == []
    assert decoder.feed(": ping") == []
    assert decoder.feed("") == []


def test_decode_generate_succeeded():
    payload = json.dumps({"kind": "generate_succeeded", "sessionId": "s1", "data": {"script": "# code"}})
    event = decode_event(payload)
    assert event.kind == EventKind.GENERATE_SUCCEEDED
    assert event.session_id == "s1"
    assert isinstance(event.data, GenerateSucceeded)
    assert event.data.script == "# code"
    assert event.is_generate and not event.is_compile


def test_decode_accepts_snake_case_session_id():
    payload = json.dumps({"kind": "compile_succeeded", "session_id": "s2", "data": {"video_url": "https://v/1.mp4"}})
    event = decode_event(payload)
    assert event.session_id == "s2"
    assert event.data.video_url == "https://v/1.mp4"


def test_decode_compile_failed_keeps_diagnostics():
    payload = json.dumps({
        "kind": "compile_failed",
        "sessionId": "s1",
        "data": {"message": "SyntaxError", "stdout": "", "stderr": "line 1", "line": 1},
    })
    event = decode_event(payload)
    assert isinstance(event.data, CompileFailed)
    assert event.data.message == "SyntaxError"
    assert event.data.stderr == "line 1"
    assert event.data.line == 1


def test_decode_compile_failed_line_is_optional():
    payload = json.dumps({"kind": "compile_failed", "sessionId": "s1", "data": {"message": "boom"}})
    event = decode_event(payload)
    assert event.data.line is None
    assert event.data.stdout == ""


def test_unknown_kind_is_ignored():
    payload = json.dumps({"kind": "compile_requested", "sessionId": "s1", "data": {"script": "x"}})
    assert decode_event(payload) is None


def test_malformed_json_raises():
    with pytest.raises(EventDecodeError):
        decode_event("{not json")


def test_non_object_raises():
    with pytest.raises(EventDecodeError):
        decode_event("[1, 2]")


def test_data_not_matching_kind_raises():
    payload = json.dumps({"kind": "generate_succeeded", "sessionId": "s1", "data": {"video_url": "x"}})
    with pytest.raises(EventDecodeError):
        decode_event(payload)
