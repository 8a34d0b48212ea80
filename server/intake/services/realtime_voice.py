"""Realtime voice session management."""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, AsyncIterator, Callable, Optional, Protocol

import numpy as np
from pydantic import ValidationError
from typing_extensions import assert_never

from ..ai_agents.support_agent import build_live_config
from ..config import Settings, settings as default_settings
from ..errors import AcquisitionError, ChannelError, DecodeError, VoiceSessionError
from ..models.events import (
    AudioFrame,
    InboundEvent,
    Interruption,
    PartialTranscript,
    ToolInvocation,
    parse_server_message,
)
from ..models.schemas import RealtimeMediaInput, Speaker, TicketRecord, TranscriptTurn
from .audio_devices import open_microphone, open_speaker
from .gemini_live import LiveChannel, open_gemini_channel
from .pcm_codec import create_media_chunk, decode_audio
from .playback import AudioSink, PlaybackScheduler
from .ticketing import TicketBridge
from .transcription import TranscriptAccumulator

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """States for tracking the session lifecycle."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class AudioSource(Protocol):
    def chunks(self) -> AsyncIterator[np.ndarray]: ...


class MeteredSink(AudioSink, Protocol):
    def level(self) -> float: ...


ResourceFactory = Callable[[], AbstractAsyncContextManager[Any]]


def _ignore(*_args: Any) -> None:
    return None


@dataclass
class SessionCallbacks:
    """Notifications delivered to the UI layer, in inbound arrival order."""

    on_connect: Callable[[], None] = _ignore
    on_disconnect: Callable[[], None] = _ignore
    on_error: Callable[[Exception], None] = _ignore
    on_volume_change: Callable[[float], None] = _ignore
    on_transcription: Callable[[str, bool, bool], None] = _ignore
    on_ticket_submitted: Callable[[TicketRecord], None] = _ignore


class _ConnectAborted(Exception):
    """disconnect() ran while connect() was still acquiring resources."""


class VoiceSession:
    """Bidirectional audio session against the live support agent.

    Owns the speaker, the microphone and the live channel for as long as it is
    connected; all three are entered on one ``AsyncExitStack`` so every exit
    path (caller disconnect, remote close, channel error) releases them.
    Inbound events are handled one at a time by a single receive task.
    """

    def __init__(
        self,
        callbacks: Optional[SessionCallbacks] = None,
        *,
        settings: Optional[Settings] = None,
        channel_factory: Optional[ResourceFactory] = None,
        microphone_factory: Optional[ResourceFactory] = None,
        speaker_factory: Optional[ResourceFactory] = None,
        bridge: Optional[TicketBridge] = None,
    ) -> None:
        cfg = settings or default_settings
        self._settings = cfg
        self._callbacks = callbacks or SessionCallbacks()
        self._channel_factory = channel_factory or (
            lambda: open_gemini_channel(cfg, build_live_config(cfg))
        )
        self._microphone_factory = microphone_factory or partial(
            open_microphone,
            sample_rate=cfg.input_sample_rate,
            block_size=cfg.capture_block_size,
            device=cfg.input_device,
        )
        self._speaker_factory = speaker_factory or partial(
            open_speaker,
            sample_rate=cfg.output_sample_rate,
            channels=cfg.output_channels,
            device=cfg.output_device,
        )
        self._bridge = bridge or TicketBridge()

        self._state = ConnectionState.DISCONNECTED
        self._resources: Optional[AsyncExitStack] = None
        self._channel: Optional[LiveChannel] = None
        self._scheduler: Optional[PlaybackScheduler] = None
        self._tasks: list[asyncio.Task[None]] = []
        self._transcript = TranscriptAccumulator()
        self._ticket: Optional[TicketRecord] = None
        self._error: Optional[VoiceSessionError] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def ticket(self) -> Optional[TicketRecord]:
        return self._ticket

    @property
    def transcript(self) -> tuple[TranscriptTurn, ...]:
        return self._transcript.turns

    @property
    def error(self) -> Optional[VoiceSessionError]:
        return self._error

    @property
    def scheduler(self) -> Optional[PlaybackScheduler]:
        return self._scheduler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        """Acquire audio devices, open the live channel and start streaming.

        Failures are reported once through ``on_error``; nothing is raised.
        """

        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            logger.warning("connect() ignored: session is already %s", self._state.value)
            return

        self._transcript.clear()
        self._ticket = None
        self._error = None
        self._scheduler = None
        self._set_state(ConnectionState.CONNECTING)

        stack = AsyncExitStack()
        self._resources = stack
        try:
            sink = await self._acquire(stack, self._speaker_factory, AcquisitionError, "Audio output unavailable")
            microphone = await self._acquire(stack, self._microphone_factory, AcquisitionError, "Microphone unavailable")
            channel = await self._acquire(stack, self._channel_factory, ChannelError, "Could not open live channel")
        except _ConnectAborted:
            logger.info("connect() aborted by disconnect()")
            await stack.aclose()
            return
        except VoiceSessionError as exc:
            if self._resources is stack:
                await self._fail(exc)
            else:
                await stack.aclose()
            return

        self._channel = channel
        self._scheduler = PlaybackScheduler(sink)
        self._set_state(ConnectionState.CONNECTED)
        self._notify("on_connect")
        self._tasks = [
            asyncio.create_task(self._receive_loop(channel), name="voice-session-rx"),
            asyncio.create_task(self._stream_microphone(microphone, channel), name="voice-session-tx"),
            asyncio.create_task(self._meter_volume(sink), name="voice-session-meter"),
        ]

    async def disconnect(self) -> None:
        """Stop playback, release every resource and notify once. Idempotent."""

        if self._state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        logger.info("Disconnecting voice session")
        await self._shutdown()

    async def _acquire(
        self,
        stack: AsyncExitStack,
        factory: ResourceFactory,
        error_type: type[VoiceSessionError],
        message: str,
    ) -> Any:
        try:
            resource = await stack.enter_async_context(factory())
        except VoiceSessionError:
            raise
        except Exception as exc:
            raise error_type(f"{message}: {exc}") from exc
        if self._resources is not stack or self._state is not ConnectionState.CONNECTING:
            raise _ConnectAborted()
        return resource

    async def _shutdown(self) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        try:
            await self._release()
        except Exception as exc:
            logger.exception("Error while releasing voice session resources")
            self._error = VoiceSessionError(f"Error while closing session: {exc}")
            self._notify("on_error", self._error)
        self._notify("on_disconnect")

    async def _fail(self, error: VoiceSessionError) -> None:
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        logger.error("Voice session failed: %s", error)
        self._set_state(ConnectionState.ERROR)
        self._error = error
        try:
            await self._release()
        except Exception:
            logger.exception("Best-effort cleanup failed after session error")
        self._notify("on_error", error)

    async def _release(self) -> None:
        if self._scheduler is not None:
            stopped = self._scheduler.stop_all()
            if stopped:
                logger.info("Stopped %d pending playback buffer(s)", stopped)

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        self._tasks = []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._channel = None
        stack, self._resources = self._resources, None
        if stack is not None:
            await stack.aclose()

    def _set_state(self, state: ConnectionState) -> None:
        old_state = self._state
        self._state = state
        logger.info("Voice session state: %s -> %s", old_state.value, state.value)

    def _notify(self, name: str, *args: Any) -> None:
        callback = getattr(self._callbacks, name)
        try:
            callback(*args)
        except Exception:
            logger.exception("Session callback %s failed", name)

    # ------------------------------------------------------------------
    # Session tasks
    # ------------------------------------------------------------------
    async def _receive_loop(self, channel: LiveChannel) -> None:
        try:
            async for payload in channel.receive():
                try:
                    events = parse_server_message(payload)
                except ValidationError as exc:
                    logger.warning("Dropping malformed server message: %s", exc)
                    continue
                for event in events:
                    await self._dispatch(event)
        except Exception as exc:
            await self._fail(ChannelError(f"Connection error occurred: {exc}"))
            return

        if self._state is ConnectionState.CONNECTED:
            logger.info("Live channel closed by remote")
            await self._shutdown()

    async def _dispatch(self, event: InboundEvent) -> None:
        match event:
            case AudioFrame():
                self._play(event)
            case Interruption():
                if self._scheduler is not None:
                    stopped = self._scheduler.interrupt()
                    logger.info("Assistant interrupted; stopped %d buffer(s)", stopped)
            case PartialTranscript(speaker=speaker, text=text, turn_complete=turn_complete):
                if text:
                    self._transcript.add(text, speaker)
                    self._notify("on_transcription", text, speaker is Speaker.USER, turn_complete)
            case ToolInvocation():
                await self._answer_tool_call(event)
            case _:
                assert_never(event)

    def _play(self, frame: AudioFrame) -> None:
        scheduler = self._scheduler
        if scheduler is None:
            return
        try:
            buffer = decode_audio(frame.data, self._settings.output_sample_rate, 1)
        except DecodeError as exc:
            logger.warning("Dropping undecodable audio chunk: %s", exc)
            return
        try:
            scheduler.schedule(buffer)
        except Exception:
            logger.exception("Failed to schedule audio chunk")

    async def _answer_tool_call(self, invocation: ToolInvocation) -> None:
        outcome = self._bridge.handle(invocation)
        if outcome.ticket is not None:
            if self._ticket is not None:
                logger.info("Replacing previously submitted ticket")
            self._ticket = outcome.ticket
            self._notify("on_ticket_submitted", outcome.ticket)

        channel = self._channel
        if channel is not None:
            await channel.send(outcome.response)

    async def _stream_microphone(self, microphone: AudioSource, channel: LiveChannel) -> None:
        sample_rate = self._settings.input_sample_rate
        try:
            async for samples in microphone.chunks():
                try:
                    chunk = create_media_chunk(samples, sample_rate)
                except Exception:
                    logger.warning("Dropping microphone chunk that failed to encode", exc_info=True)
                    continue
                await channel.send(RealtimeMediaInput(realtime_media_input=chunk))
        except Exception as exc:
            await self._fail(ChannelError(f"Failed to stream microphone audio: {exc}"))

    async def _meter_volume(self, sink: MeteredSink) -> None:
        interval = 1.0 / self._settings.volume_refresh_hz
        while True:
            self._notify("on_volume_change", sink.level())
            await asyncio.sleep(interval)
