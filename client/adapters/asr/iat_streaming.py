"""
Real-time IAT streaming recognizer (signed WebSocket, 40ms PCM frames).

Core model:
- One VoiceSession per start(); the connection, capture device, and byte
  queue belong to that session only.
- Everything runs on one asyncio loop: the connect task, the receive loop,
  the chunker timer, and capture appends (posted from the PortAudio thread
  with call_soon_threadsafe). No locks are needed on session state.
- Frames go out in strict order over the single connection:
  Start (seq 0, full parameters) -> Continuation (seq 1..n) -> Final.

State machine:

    IDLE --start()--> CONNECTING --open--> AWAITING_FIRST_FRAME
    AWAITING_FIRST_FRAME --first chunk--> STREAMING (Start frame)
    STREAMING --chunk--> STREAMING (Continuation frame)
    open --stop()--> CLOSING --Final sent [+ drain]--> CLOSED (on_end)
    open --terminal result--> CLOSED (on_end)
    any --ProtocolError / TransportError / CaptureError--> CLOSED (on_error)

Failure rules:
- No retries. One attempt per start(); the caller may start() again.
- A malformed inbound message is logged and skipped; it only ends the
  session if its envelope still carried the terminal status.
- Every fatal path funnels through _teardown(), which is idempotent.
- Exactly one terminal callback (on_end or on_error) per start().

Known behavior kept on purpose:
- Audio still queued when stop() is called (including a tail shorter than
  one frame) is discarded, not flushed. It is logged as discarded_bytes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.asr.base import (
    EndCallback,
    ErrorCallback,
    ResultCallback,
    SpeechRecognizer,
)
from audio.capture import AudioCapture, CaptureFactory, MicrophoneCapture
from audio.chunker import FrameChunker
from config import IatConfig
from errors import (
    CaptureError,
    ConfigurationError,
    MalformedMessage,
    ProtocolError,
    TransportError,
)
from observability.logger import log_event
from observability.metrics import cancel_timer, start_timer, stop_timer, timed
from protocol.auth import build_connection_url
from protocol.frames import (
    FrameEncodingError,
    FrameStatus,
    continuation_frame,
    final_frame,
    start_frame,
)
from protocol.results import decode_message
from session.state import SessionState
from session.voice_session import VoiceSession
from spec import FRAME_INTERVAL_S

ConnectFn = Callable[[str], Awaitable[Any]]
WarningCallback = Callable[[MalformedMessage], None]

_MAX_MESSAGE_BYTES = 2**22


async def _default_connect(url: str) -> Any:
    return await ws_connect(url, max_size=_MAX_MESSAGE_BYTES, ping_interval=None)


class IatStreamingRecognizer(SpeechRecognizer):
    """
    Streaming speech recognizer for the IAT WebSocket API.

    Public interface:
    - start(on_result, on_error, on_end): begin a session (non-blocking)
    - stop(): end input; safe in every state, idempotent
    - wait_closed(): await full resource release
    - feed_pcm(bytes): capture entry point (16kHz PCM16LE)
    - tick(): one chunker tick (the timer calls this every 40ms)

    Injection points (tests, file sources):
    - connect(url) -> connection with async send(str), close(), async iteration
    - capture_factory(on_pcm) -> object with start() / close()
    """

    def __init__(
        self,
        config: IatConfig,
        *,
        connect: ConnectFn | None = None,
        capture_factory: CaptureFactory | None = None,
        frame_interval_s: float = FRAME_INTERVAL_S,
        on_warning: WarningCallback | None = None,
    ) -> None:
        self._config = config
        self._connect = connect or _default_connect
        self._capture_factory = capture_factory
        self._frame_interval_s = frame_interval_s
        self._on_warning = on_warning

        self._session = VoiceSession()
        self._on_result: ResultCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._on_end: EndCallback | None = None
        self._terminal_delivered = False

        self._tasks: set[asyncio.Task[None]] = set()
        self._closed_event: asyncio.Event | None = None
        self._first_result_timer: str | None = None

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def session(self) -> VoiceSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def transcript(self) -> str:
        return self._session.transcript.text

    def is_configured(self) -> bool:
        return self._config.is_configured()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        """
        Begin a new session.

        Returns immediately; connection, capture, and streaming proceed on
        the running loop. A missing credential is reported via on_error and
        the session goes straight to CLOSED without touching the network.

        Raises:
            RuntimeError if a session is already active or no loop is running.
        """
        loop = asyncio.get_running_loop()
        if self._session.state.is_active:
            raise RuntimeError("recognition session already active")

        self._session = VoiceSession()
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        self._terminal_delivered = False
        self._tasks = set()
        self._closed_event = asyncio.Event()

        self._set_state(SessionState.CONNECTING)

        try:
            self._config.require_credentials()
        except ConfigurationError as e:
            self._fail(e, stage="configure")
            return

        self._spawn(loop, self._open())

    def stop(self) -> None:
        """
        End audio input.

        - IDLE / CLOSING / CLOSED: no-op
        - CONNECTING: abandon the handshake, close, on_end("")
        - open: halt timer and capture, send Final (if Start went out),
          optionally drain for the terminal result, then close with on_end
        """
        s = self._session
        if s.state in (SessionState.IDLE, SessionState.CLOSING, SessionState.CLOSED):
            return

        if s.state is SessionState.CONNECTING:
            self._complete("stopped_before_open")
            return

        self._set_state(SessionState.CLOSING)
        self._spawn(asyncio.get_running_loop(), self._close_gracefully())

    async def wait_closed(self) -> None:
        if self._closed_event is None:
            return
        await self._closed_event.wait()

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def feed_pcm(self, pcm_bytes: bytes) -> None:
        """Queue captured PCM. Ignored unless the connection is open."""
        s = self._session
        if s.state.is_open and s.chunker is not None:
            s.chunker.append(pcm_bytes)

    async def tick(self) -> bool:
        """Dispatch at most one frame. False if nothing was sent."""
        s = self._session
        if not s.state.is_open or s.chunker is None:
            return False
        return await s.chunker.tick()

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def _open(self) -> None:
        s = self._session
        cfg = self._config
        url = build_connection_url(
            cfg.host, cfg.path, cfg.api_key or "", cfg.api_secret or ""
        )

        try:
            with timed("iat_connect", session_id=s.session_id):
                if cfg.connect_timeout_s:
                    ws = await asyncio.wait_for(self._connect(url), cfg.connect_timeout_s)
                else:
                    ws = await self._connect(url)
        except asyncio.TimeoutError:
            if cfg.connect_timeout_s:
                reason = f"handshake timed out after {cfg.connect_timeout_s}s"
            else:
                reason = "handshake timed out"
            self._fail(TransportError(reason), stage="connect")
            return
        except (WebSocketException, OSError) as e:
            self._fail(TransportError(f"connect failed: {e!r}"), stage="connect")
            return

        if s.state is not SessionState.CONNECTING:
            # stop() won the race; the session is already closed
            await self._close_websocket(ws)
            return

        s.attach_websocket(ws)
        s.attach_chunker(
            FrameChunker(on_frame=self._dispatch_chunk, interval_s=self._frame_interval_s)
        )
        self._set_state(SessionState.AWAITING_FIRST_FRAME)
        self._spawn(asyncio.get_running_loop(), self._recv_loop(ws))

        try:
            capture = self._make_capture()
            s.attach_capture(capture)
            capture.start()
        except CaptureError as e:
            self._fail(e, stage="capture")
            return

        assert s.chunker is not None
        s.chunker.start()
        self._first_result_timer = start_timer("iat_first_result")

    def _make_capture(self) -> AudioCapture:
        if self._capture_factory is not None:
            return self._capture_factory(self.feed_pcm)
        return MicrophoneCapture(
            on_pcm=self.feed_pcm,
            loop=asyncio.get_running_loop(),
            device=self._config.input_device,
        )

    async def _close_gracefully(self) -> None:
        s = self._session

        if s.chunker is not None:
            await s.chunker.stop()
        if s.capture is not None:
            s.capture.close()
        if s.state is SessionState.CLOSED:
            return

        ws = s.websocket
        if ws is not None and s.first_frame_sent and not s.final_frame_sent:
            try:
                frame = final_frame(app_id=self._config.app_id or "", seq=s.next_seq())
                await ws.send(frame.encode())
            except (FrameEncodingError, WebSocketException, OSError) as e:
                log_event({
                    **s.log_context(),
                    "event_type": "IAT_FINAL_NOT_SENT",
                    "error": repr(e),
                })
            else:
                s.final_frame_sent = True
                s.frames_sent += 1
                log_event({
                    **s.log_context(),
                    "event_type": "IAT_FRAME_SENT",
                    "frame": FrameStatus.LAST.name,
                    "seq": frame.seq,
                })

        drain_s = self._config.stop_drain_s
        if s.final_frame_sent and drain_s > 0 and self._closed_event is not None:
            try:
                await asyncio.wait_for(self._closed_event.wait(), drain_s)
            except asyncio.TimeoutError:
                log_event({
                    **s.log_context(),
                    "event_type": "IAT_DRAIN_TIMEOUT",
                    "drain_s": drain_s,
                })

        self._complete("stopped")

    async def _close_websocket(self, ws: Any) -> None:
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            log_event({
                "session_id": self._session.session_id,
                "event_type": "IAT_CLOSE_FAILED",
                "error": repr(e),
            })

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def _dispatch_chunk(self, chunk: bytes) -> None:
        s = self._session
        ws = s.websocket
        if ws is None or not s.state.is_open:
            return

        app_id = self._config.app_id or ""
        try:
            if not s.first_frame_sent:
                frame = start_frame(
                    app_id=app_id,
                    parameters=self._config.parameters,
                    pcm_bytes=chunk,
                    seq=s.next_seq(),
                )
            else:
                frame = continuation_frame(app_id=app_id, seq=s.next_seq(), pcm_bytes=chunk)
        except FrameEncodingError as e:
            self._fail(e, stage="encode")
            return

        try:
            await ws.send(frame.encode())
        except (WebSocketException, OSError) as e:
            self._fail(TransportError(f"send failed: {e!r}"), stage="send")
            return

        s.frames_sent += 1
        if frame.status is FrameStatus.FIRST:
            s.first_frame_sent = True
            log_event({
                **s.log_context(),
                "event_type": "IAT_FRAME_SENT",
                "frame": FrameStatus.FIRST.name,
                "seq": frame.seq,
            })
            if s.state is SessionState.AWAITING_FIRST_FRAME:
                self._set_state(SessionState.STREAMING)

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
                if self._session.state is SessionState.CLOSED:
                    return
        except (ConnectionClosed, OSError) as e:
            self._on_connection_lost(f"connection dropped: {e!r}")
            return

        self._on_connection_lost("connection closed before final result")

    def _handle_message(self, raw: str | bytes) -> None:
        s = self._session

        try:
            msg = decode_message(raw)
        except MalformedMessage as e:
            log_event({
                **s.log_context(),
                "event_type": "IAT_DECODE_WARNING",
                "reason": e.reason,
                "terminal": e.terminal,
            })
            if self._on_warning is not None:
                self._on_warning(e)
            if e.terminal:
                self._complete("final_status")
            return

        if msg.is_error:
            self._fail(ProtocolError(msg.code, msg.message, msg.sid), stage="recv")
            return

        if msg.result is not None:
            text = s.transcript.apply(msg.result)
            stop_timer(self._first_result_timer, session_id=s.session_id)
            self._first_result_timer = None
            log_event({
                **s.log_context(),
                "event_type": "IAT_RESULT",
                "sn": msg.result.sn,
                "pgs": msg.result.pgs,
                "chars": len(text),
                "is_last": msg.result.is_last,
            })
            if self._on_result is not None:
                self._on_result(text)

        if msg.is_terminal:
            self._complete("final_result")

    def _on_connection_lost(self, reason: str) -> None:
        state = self._session.state
        if state is SessionState.CLOSED:
            return
        if state is SessionState.CLOSING:
            # Server hung up after our Final frame; nothing more is coming.
            self._complete("server_closed")
            return
        self._fail(TransportError(reason), stage="recv")

    # -------------------------------------------------------------------------
    # Terminal paths
    # -------------------------------------------------------------------------

    def _complete(self, reason: str) -> None:
        if self._session.state is SessionState.CLOSED:
            return
        self._teardown(reason)
        if self._terminal_delivered:
            return
        self._terminal_delivered = True
        if self._on_end is not None:
            self._on_end(self._session.transcript.text)

    def _fail(self, exc: BaseException, *, stage: str) -> None:
        s = self._session
        if s.state is SessionState.CLOSED:
            return
        log_event({
            **s.log_context(),
            "event_type": "IAT_ERROR",
            "stage": stage,
            "error_type": type(exc).__name__,
            "error": str(exc),
        })
        self._teardown(f"error:{stage}")
        if self._terminal_delivered:
            return
        self._terminal_delivered = True
        if self._on_error is not None:
            self._on_error(exc)

    def _teardown(self, reason: str) -> None:
        """
        Release every session resource. Idempotent.

        Must:
        - Not await (runs inside callbacks and tasks alike)
        - Leave the session CLOSED with a clean protocol state
        """
        s = self._session
        if s.state is SessionState.CLOSED:
            return
        self._set_state(SessionState.CLOSED, reason=reason)

        discarded = 0
        snapshot: dict[str, float | int] = {}
        if s.chunker is not None:
            s.chunker.cancel()
            snapshot = s.chunker.queue.snapshot()
            discarded = s.chunker.discard()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()

        if s.capture is not None:
            s.capture.close()

        ws = s.websocket
        s.websocket = None
        if ws is not None:
            self._spawn(asyncio.get_running_loop(), self._close_websocket(ws))

        s.reset_protocol()
        cancel_timer(self._first_result_timer)
        self._first_result_timer = None

        log_event({
            **s.log_context(),
            "event_type": "IAT_TEARDOWN",
            "reason": reason,
            "frames_sent": s.frames_sent,
            "final_frame_sent": s.final_frame_sent,
            "discarded_bytes": discarded,
            "queue": snapshot,
        })

        if self._closed_event is not None:
            self._closed_event.set()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_state(self, new: SessionState, *, reason: str | None = None) -> None:
        s = self._session
        old = s.state
        s.state = new
        log_event({
            "session_id": s.session_id,
            "event_type": "IAT_STATE",
            "from": old.value,
            "to": new.value,
            "reason": reason,
        })

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro: Any) -> None:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
