from __future__ import annotations

import pytest
from pydantic import ValidationError

from intake.models.events import (
    AudioFrame,
    Interruption,
    PartialTranscript,
    ToolInvocation,
    parse_server_message,
)
from intake.models.schemas import Speaker


def test_envelope_is_split_in_processing_order():
    payload = {
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"inlineData": {"data": "AAA=", "mimeType": "audio/pcm;rate=24000"}},
                    {"text": "thinking"},
                    {"inlineData": {"data": "AQA=", "mimeType": "audio/pcm;rate=24000"}},
                ]
            },
            "interrupted": True,
            "turnComplete": True,
            "inputTranscription": {"text": "hola"},
            "outputTranscription": {"text": "Buenos días"},
        },
        "toolCall": {"functionCalls": [{"id": "c1", "name": "submitTicket", "args": {"name": "Ana"}}]},
    }

    events = parse_server_message(payload)

    assert events == [
        AudioFrame("AAA=", "audio/pcm;rate=24000"),
        AudioFrame("AQA=", "audio/pcm;rate=24000"),
        Interruption(),
        PartialTranscript(Speaker.ASSISTANT, "Buenos días", True),
        PartialTranscript(Speaker.USER, "hola", True),
        ToolInvocation("c1", "submitTicket", {"name": "Ana"}),
    ]


def test_empty_envelope_yields_nothing():
    assert parse_server_message({}) == []
    assert parse_server_message({"setupComplete": {}}) == []


def test_tool_call_without_args_gets_empty_mapping():
    events = parse_server_message({"toolCall": {"functionCalls": [{"name": "submitTicket"}]}})

    assert events == [ToolInvocation(None, "submitTicket", {})]


def test_nameless_function_call_is_skipped_without_losing_the_others():
    payload = {
        "toolCall": {
            "functionCalls": [
                {"id": "c1"},
                {"id": "c2", "name": "submitTicket", "args": {"name": "Ana"}},
            ]
        }
    }

    assert parse_server_message(payload) == [ToolInvocation("c2", "submitTicket", {"name": "Ana"})]


def test_malformed_envelope_is_rejected():
    with pytest.raises(ValidationError):
        parse_server_message({"toolCall": {"functionCalls": "submitTicket"}})
    with pytest.raises(ValidationError):
        parse_server_message({"serverContent": {"interrupted": "maybe"}})
