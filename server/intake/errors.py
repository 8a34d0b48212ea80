"""Exception taxonomy for realtime voice sessions."""
from __future__ import annotations

from typing import Iterable


class VoiceSessionError(Exception):
    """Base class for failures raised by the voice intake core."""


class AcquisitionError(VoiceSessionError):
    """Microphone or audio subsystem is unavailable or access was denied."""


class DecodeError(VoiceSessionError, ValueError):
    """An inbound audio payload could not be decoded."""


class ChannelError(VoiceSessionError):
    """The duplex channel to the remote service failed."""


class ToolArgumentError(VoiceSessionError, ValueError):
    """A tool invocation is missing required arguments."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(f"Missing required tool arguments: {', '.join(self.missing)}")
