"""Realtime voice websocket relay for the browser UI."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..models.schemas import SessionStatusResponse, TicketRecord
from ..services.realtime_voice import ConnectionState, SessionCallbacks, VoiceSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])

SessionFactory = Callable[[SessionCallbacks], VoiceSession]


class RealtimeWebSocketManager:
    """One ``VoiceSession`` per connected UI, keyed by session id.

    Session callbacks are turned into JSON events on a per-socket queue and a
    sender task drains it, so the UI sees them in the order they fired.
    """

    def __init__(self, session_factory: SessionFactory = VoiceSession) -> None:
        self.session_factory = session_factory
        self.active_sessions: dict[str, VoiceSession] = {}
        self.websockets: dict[str, WebSocket] = {}
        self.outboxes: dict[str, asyncio.Queue[dict[str, Any]]] = {}
        self._senders: dict[str, asyncio.Task[None]] = {}
        self._connect_tasks: dict[str, asyncio.Task[None]] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.websockets[session_id] = websocket
        self.outboxes[session_id] = outbox
        self.active_sessions[session_id] = self.session_factory(self._callbacks(outbox))
        self._senders[session_id] = asyncio.create_task(self._pump_events(session_id, websocket, outbox))
        logger.info("[Session %s] UI connected", session_id)

    async def disconnect(self, session_id: str) -> None:
        session = self.active_sessions.pop(session_id, None)
        if session is not None:
            await session.disconnect()
        self._connect_tasks.pop(session_id, None)
        sender = self._senders.pop(session_id, None)
        if sender is not None:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
        self.websockets.pop(session_id, None)
        self.outboxes.pop(session_id, None)
        logger.info("[Session %s] UI disconnected", session_id)

    async def close_all(self) -> None:
        for session_id in list(self.active_sessions):
            await self.disconnect(session_id)

    def status(self, session_id: str) -> Optional[SessionStatusResponse]:
        session = self.active_sessions.get(session_id)
        if session is None:
            return None
        return SessionStatusResponse(
            session_id=session_id,
            status=session.state.value,
            ticket=session.ticket,
            transcript=list(session.transcript),
            error=str(session.error) if session.error else None,
        )

    async def handle_client_message(self, session_id: str, message: Any) -> None:
        session = self.active_sessions[session_id]
        outbox = self.outboxes[session_id]
        message_type = message.get("type") if isinstance(message, dict) else None

        if message_type == "connect":
            if session.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                outbox.put_nowait({"type": "error", "error": f"Session already {session.state.value}"})
                return
            outbox.put_nowait({"type": "connection_state", "state": ConnectionState.CONNECTING.value})
            self._connect_tasks[session_id] = asyncio.create_task(session.connect())
        elif message_type == "disconnect":
            await session.disconnect()
        elif message_type == "status":
            status = self.status(session_id)
            outbox.put_nowait({"type": "status", **status.model_dump(mode="json")})
        else:
            outbox.put_nowait({"type": "error", "error": f"Unknown message type: {message_type}"})

    @staticmethod
    def _callbacks(outbox: asyncio.Queue[dict[str, Any]]) -> SessionCallbacks:
        put = outbox.put_nowait

        def _state(state: ConnectionState) -> None:
            put({"type": "connection_state", "state": state.value})

        def _error(error: Exception) -> None:
            put({"type": "error", "error": str(error)})
            _state(ConnectionState.ERROR)

        def _ticket(ticket: TicketRecord) -> None:
            put({"type": "ticket", "ticket": ticket.model_dump(mode="json")})

        return SessionCallbacks(
            on_connect=lambda: _state(ConnectionState.CONNECTED),
            on_disconnect=lambda: _state(ConnectionState.DISCONNECTED),
            on_error=_error,
            on_volume_change=lambda level: put({"type": "volume", "level": level}),
            on_transcription=lambda text, is_user, is_final: put(
                {"type": "transcription", "text": text, "is_user": is_user, "is_final": is_final}
            ),
            on_ticket_submitted=_ticket,
        )

    @staticmethod
    async def _pump_events(session_id: str, websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
        try:
            while True:
                event = await outbox.get()
                await websocket.send_json(event)
        except Exception as e:
            logger.info("[Session %s] Stopped relaying events: %s", session_id, e)


manager = RealtimeWebSocketManager()


@router.websocket("/ws/{session_id}")
async def realtime_voice_gateway(websocket: WebSocket, session_id: str) -> None:
    """Relay one voice session to a browser UI.

    The client sends ``connect``, ``disconnect`` and ``status`` messages and
    receives ``connection_state``, ``transcription``, ``volume``, ``ticket``,
    ``status`` and ``error`` events. Closing the socket ends the session.
    """

    if session_id in manager.active_sessions:
        await websocket.close(code=4409)
        return

    await manager.connect(websocket, session_id)
    try:
        while True:
            message = await websocket.receive_json()
            await manager.handle_client_message(session_id, message)
    except WebSocketDisconnect:
        logger.info("[Session %s] Websocket closed by client", session_id)
    finally:
        await manager.disconnect(session_id)
