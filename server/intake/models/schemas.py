"""Pydantic models describing wire payloads, tickets and session snapshots."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Speaker(str, Enum):
    """Who produced a piece of transcribed speech."""

    USER = "user"
    ASSISTANT = "assistant"


class WireModel(BaseModel):
    """Base for payloads exchanged with the live service (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Inbound server envelope
# ---------------------------------------------------------------------------


class InlineData(WireModel):
    data: Optional[str] = None
    mime_type: Optional[str] = None


class Part(WireModel):
    inline_data: Optional[InlineData] = None
    text: Optional[str] = None


class ModelTurn(WireModel):
    parts: List[Part] = Field(default_factory=list)


class Transcription(WireModel):
    text: Optional[str] = None


class ServerContent(WireModel):
    model_turn: Optional[ModelTurn] = None
    interrupted: Optional[bool] = None
    turn_complete: Optional[bool] = None
    output_transcription: Optional[Transcription] = None
    input_transcription: Optional[Transcription] = None


class FunctionCall(WireModel):
    id: Optional[str] = None
    name: str
    args: Optional[Dict[str, Any]] = None


class ToolCall(WireModel):
    # Entries are validated one by one into ``FunctionCall``.
    function_calls: List[Dict[str, Any]] = Field(default_factory=list)


class ServerMessage(WireModel):
    """One message received from the live service."""

    server_content: Optional[ServerContent] = None
    tool_call: Optional[ToolCall] = None


# ---------------------------------------------------------------------------
# Outbound messages
# ---------------------------------------------------------------------------


class MediaChunk(WireModel):
    """Base64 PCM16 audio plus its mime type (``audio/pcm;rate=16000``)."""

    data: str
    mime_type: str


class RealtimeMediaInput(WireModel):
    realtime_media_input: MediaChunk


class ToolResponseBody(WireModel):
    call_id: Optional[str] = None
    name: str
    response: Dict[str, str]


class ToolResponse(WireModel):
    tool_response: ToolResponseBody


OutboundMessage = Union[RealtimeMediaInput, ToolResponse]


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class TicketRecord(BaseModel):
    """Support ticket collected by the voice agent."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the caller")
    email: str = Field(..., description="Institutional email of the caller")
    municipality: str = Field(..., description="Municipality the caller works for")
    system: str = Field(..., description="SMC system the request refers to")
    issue: str = Field(..., description="Summary of the reported problem")


class TranscriptTurn(BaseModel):
    """One contiguous span of speech attributed to a single speaker."""

    model_config = ConfigDict(frozen=True)

    turn_id: str = Field(default_factory=lambda: uuid4().hex)
    speaker: Speaker
    text: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionStatusResponse(BaseModel):
    """Represents the current state of a voice session."""

    session_id: str
    status: str
    ticket: Optional[TicketRecord] = None
    transcript: List[TranscriptTurn] = Field(default_factory=list)
    error: Optional[str] = None
