"""
WebSocketManager: drives one ConversationSession from one WebSocket.

Client -> server:
- binary: PCM 16-bit mono at SAMPLE_RATE; framed into FRAME_SAMPLES frames, each
  frame goes through session.process_audio_frame().
- text (JSON): {"type": "chunk", ...StreamChunk fields} from the client-side
  recognizer (type may be omitted); {"type": "speaker", "speaker_id": ...} manual
  override; {"type": "languages", "employee_language": ..., "customer_language": ...}.

Server -> client: every SessionEvent as JSON ({type, session_id, timestamp, ...}).

Three tasks per connection: the receive loop (this coroutine), the event sender
(channel -> socket) and the ticker (session.tick every TICK_INTERVAL_MS, which is
what fires silence deadlines, ducking fades and the routing delay when no audio
arrives). On disconnect, or when the ticker finds the session past MAX_SESSION_SECONDS,
the session is closed and remaining events are flushed; an expired session also
closes the socket.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

from handsfree.audio.receiver import AudioReceiver
from handsfree.config import get_settings
from handsfree.engine.local import LocalSpeechEngine
from handsfree.errors import HandsFreeError, SessionNotFound
from handsfree.events import EventType, SessionEvent
from handsfree.session import ConversationSession, SessionLifecycle
from handsfree.session_store import close_session

logger = logging.getLogger(__name__)


def _event_to_json(event: SessionEvent) -> str:
    return json.dumps(event.to_dict(), default=str)


class WebSocketManager:
    """One WebSocket = one live conversation session."""

    def __init__(self, websocket: WebSocket, session: ConversationSession) -> None:
        self._ws = websocket
        self._session = session
        self._receiver = AudioReceiver()
        self._tick_interval = get_settings().TICK_INTERVAL_MS / 1000.0
        self._sender_task: asyncio.Task[Any] | None = None
        self._ticker_task: asyncio.Task[Any] | None = None
        self._closed = False
        self._stop = asyncio.Event()

    async def _send_event(self, event: SessionEvent) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(_event_to_json(event))
        except Exception:
            self._closed = True

    async def _event_sender(self) -> None:
        channel = self._session.channel
        while not self._closed:
            event = await channel.get()
            await self._send_event(event)

    async def _ticker(self) -> None:
        while not self._closed:
            self._session.tick()
            if self._session.expired():
                logger.info("Session %s reached max duration; closing", self._session.session_id)
                self._session.channel.emit(EventType.STATUS, status="Session expired")
                self._stop.set()
                break
            await asyncio.sleep(self._tick_interval)

    async def _receive(self) -> dict[str, Any] | None:
        """Next client message, or None once the ticker has ended the session."""
        receive = asyncio.ensure_future(self._ws.receive())
        stop = asyncio.ensure_future(self._stop.wait())
        done, pending = await asyncio.wait({receive, stop}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if receive in done:
            return receive.result()
        return None

    def _handle_text(self, text: str) -> None:
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            self._session.channel.emit(EventType.ERROR, message="Invalid JSON message")
            return
        if not isinstance(message, dict):
            self._session.channel.emit(EventType.ERROR, message="Message must be a JSON object")
            return

        kind = message.get("type", "chunk")
        if kind == "chunk":
            engine = self._session.engine
            if isinstance(engine, LocalSpeechEngine):
                engine.feed(message)
            else:
                self._session.handle_chunk(message)
        elif kind == "speaker":
            speaker_id = message.get("speaker_id") or message.get("speakerId")
            if speaker_id:
                self._session.force_speaker_change(str(speaker_id))
        elif kind == "languages":
            self._session.set_languages(
                message.get("employee_language") or self._session.state.employee_language,
                message.get("customer_language") or self._session.state.customer_language,
            )
        else:
            self._session.channel.emit(EventType.ERROR, message=f"Unknown message type: {kind}")

    async def run(self) -> None:
        """Main loop: start session, receive audio and chunks until disconnect."""
        if self._session.lifecycle is SessionLifecycle.INIT:
            await self._session.start()
        try:
            await self._ws.send_text(
                json.dumps({"type": "session", "session_id": self._session.session_id})
            )
        except Exception:
            pass

        self._sender_task = asyncio.create_task(self._event_sender())
        self._ticker_task = asyncio.create_task(self._ticker())

        try:
            while not self._closed:
                try:
                    msg = await self._receive()
                except Exception:
                    break
                if msg is None or msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                text = msg.get("text")
                try:
                    if data is not None:
                        self._receiver.feed(data)
                        for frame in self._receiver.drain_frames():
                            self._session.process_audio_frame(frame)
                    elif text is not None:
                        self._handle_text(text)
                except HandsFreeError as e:
                    logger.warning("Session %s: %s", self._session.session_id, e)
                    self._session.channel.emit(EventType.ERROR, message=str(e), error_type=type(e).__name__)
                    if not self._session.is_active:
                        break
        finally:
            self._closed = True
            if self._ticker_task:
                self._ticker_task.cancel()
            if self._sender_task:
                self._sender_task.cancel()
            await asyncio.gather(
                *(t for t in (self._ticker_task, self._sender_task) if t), return_exceptions=True
            )
            try:
                await close_session(self._session.session_id)
            except SessionNotFound:
                await self._session.dispose()
            # Flush events produced during teardown (session-state, final translations)
            self._closed = False
            for event in self._session.channel.drain():
                await self._send_event(event)
            self._closed = True
            if self._stop.is_set():
                try:
                    await self._ws.close(code=1000)
                except Exception:
                    pass
