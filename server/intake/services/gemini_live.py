"""Duplex channel to the Gemini Live API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

from google import genai
from google.genai import types
from typing_extensions import assert_never
from websockets.exceptions import ConnectionClosedOK

from ..config import Settings
from ..models.schemas import OutboundMessage, RealtimeMediaInput, ToolResponse
from .pcm_codec import decode_base64

logger = logging.getLogger(__name__)


class LiveChannel(Protocol):
    """Ordered, message-framed connection to the remote agent."""

    async def send(self, message: OutboundMessage) -> None: ...

    def receive(self) -> AsyncIterator[dict[str, Any]]: ...


class GeminiLiveChannel:
    """Adapts a ``google-genai`` live session to the channel contract.

    Inbound SDK messages are dumped to the camelCase JSON envelope (audio as
    base64 text); outbound models are translated into SDK calls.
    """

    def __init__(self, session: Any) -> None:
        self._session = session

    async def send(self, message: OutboundMessage) -> None:
        if isinstance(message, RealtimeMediaInput):
            chunk = message.realtime_media_input
            await self._session.send_realtime_input(
                audio=types.Blob(data=decode_base64(chunk.data), mime_type=chunk.mime_type)
            )
        elif isinstance(message, ToolResponse):
            body = message.tool_response
            await self._session.send_tool_response(
                function_responses=[
                    types.FunctionResponse(id=body.call_id, name=body.name, response=body.response)
                ]
            )
        else:
            assert_never(message)

    async def receive(self) -> AsyncIterator[dict[str, Any]]:
        # session.receive() ends after every completed turn; keep reading until
        # the socket closes.
        while True:
            received = False
            try:
                async for message in self._session.receive():
                    received = True
                    yield message.model_dump(mode="json", by_alias=True, exclude_none=True)
            except ConnectionClosedOK:
                logger.info("Gemini Live connection closed by remote")
                return
            if not received:
                return


@asynccontextmanager
async def open_gemini_channel(settings: Settings, config: types.LiveConnectConfig) -> AsyncIterator[GeminiLiveChannel]:
    """Open the live session; leaving the context closes it."""

    client = genai.Client(api_key=settings.gemini_api_key)
    logger.info("Opening Gemini Live session (model=%s, voice=%s)", settings.gemini_model, settings.gemini_voice)
    async with client.aio.live.connect(model=settings.gemini_model, config=config) as session:
        logger.info("Gemini Live session opened")
        yield GeminiLiveChannel(session)
    logger.info("Gemini Live session closed")
