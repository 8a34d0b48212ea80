"""Inbound events decoded from live service messages."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from .schemas import FunctionCall, ServerMessage, Speaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFrame:
    """Base64 PCM16 audio produced by the remote agent."""

    data: str
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class Interruption:
    """The caller started speaking over the agent (barge-in)."""


@dataclass(frozen=True)
class PartialTranscript:
    speaker: Speaker
    text: str
    turn_complete: bool = False


@dataclass(frozen=True)
class ToolInvocation:
    call_id: Optional[str]
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


InboundEvent = Union[AudioFrame, Interruption, PartialTranscript, ToolInvocation]


def parse_server_message(payload: Mapping[str, Any]) -> list[InboundEvent]:
    """Split one server envelope into events, in processing order.

    Audio parts come first, then the interruption flag, then the output and
    input transcriptions, then tool invocations. Raises
    ``pydantic.ValidationError`` when the envelope does not match the contract;
    a malformed function call is skipped on its own.
    """

    message = ServerMessage.model_validate(payload)
    events: list[InboundEvent] = []

    content = message.server_content
    if content is not None:
        if content.model_turn is not None:
            for part in content.model_turn.parts:
                if part.inline_data is not None and part.inline_data.data:
                    events.append(AudioFrame(part.inline_data.data, part.inline_data.mime_type))

        if content.interrupted:
            events.append(Interruption())

        turn_complete = bool(content.turn_complete)
        if content.output_transcription is not None:
            events.append(
                PartialTranscript(
                    Speaker.ASSISTANT,
                    content.output_transcription.text or "",
                    turn_complete,
                )
            )
        if content.input_transcription is not None:
            events.append(
                PartialTranscript(
                    Speaker.USER,
                    content.input_transcription.text or "",
                    turn_complete,
                )
            )

    if message.tool_call is not None:
        for raw_call in message.tool_call.function_calls:
            try:
                call = FunctionCall.model_validate(raw_call)
            except ValidationError as exc:
                logger.warning("Skipping malformed function call %s: %s", raw_call, exc)
                continue
            events.append(ToolInvocation(call.id, call.name, dict(call.args or {})))

    return events
