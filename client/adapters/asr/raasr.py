"""
Recorded-file recognizer (record -> WAV -> upload -> poll -> text).

Same SpeechRecognizer contract as the streaming client, with a different
latency profile: nothing is recognized until stop().

Flow:
- start(): open the microphone, accumulate 16kHz PCM16LE in memory
- stop(): release the microphone, wrap the buffer in a WAV container,
  POST it to the upload endpoint, then poll getResult until the order
  reaches a terminal status
- status 4  -> on_result(text), on_end(text)
- status -1 -> on_error(TranscriptionFailed)
- polls exhausted -> on_error(TranscriptionTimeout)

Every request is signed with a fresh `ts` / `signa` pair (see
protocol.auth.build_signa). No retries on HTTP failure.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable

import httpx

from adapters.asr.base import (
    EndCallback,
    ErrorCallback,
    ResultCallback,
    SpeechRecognizer,
)
from audio.capture import CaptureFactory, MicrophoneCapture
from audio.wav import pcm16_duration_ms, pcm16_to_wav
from config import IatConfig
from errors import (
    CaptureError,
    ConfigurationError,
    IatError,
    TranscriptionFailed,
    TranscriptionTimeout,
    TransportError,
)
from observability.logger import log_event
from observability.metrics import timed
from protocol.auth import build_signa
from session.state import SessionState
from spec import (
    RAASR_FILE_NAME,
    RAASR_LANGUAGE,
    RAASR_ORDER_DONE,
    RAASR_ORDER_FAILED,
    RAASR_POLL_DELAY_S,
    RAASR_POLL_MAX_TRIES,
)

_HTTP_TIMEOUT_S = 30.0


# -------------------------
# Result parsing
# -------------------------

def _maybe_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def extract_order_text(order_result: Any) -> str:
    """
    Concatenate the best candidate of every word in an orderResult.

    orderResult (and each lattice item's json_1best) may arrive either as a
    JSON string or already decoded. Unparseable pieces are skipped.
    """
    obj = _maybe_json(order_result)
    if not isinstance(obj, dict):
        return ""

    pieces: list[str] = []
    for item in _as_list(obj.get("lattice") or obj.get("lattice2")):
        if not isinstance(item, dict):
            continue
        best = _maybe_json(item.get("json_1best"))
        if not isinstance(best, dict) or not isinstance(best.get("st"), dict):
            continue
        for rt in _as_list(best["st"].get("rt")):
            if not isinstance(rt, dict):
                continue
            for ws in _as_list(rt.get("ws")):
                if not isinstance(ws, dict):
                    continue
                cw = _as_list(ws.get("cw"))
                if cw and isinstance(cw[0], dict) and isinstance(cw[0].get("w"), str):
                    pieces.append(cw[0]["w"])
    return "".join(pieces)


class RaasrRecognizer(SpeechRecognizer):
    """
    Buffered recognizer for the recorded-file transcription API.

    Injection points:
    - http_client: a shared httpx.AsyncClient (e.g. one with MockTransport);
      when omitted a client is created per transcription and closed after
    - capture_factory(on_pcm): replaces the microphone
    - poll_delay_s / max_tries: polling budget
    """

    def __init__(
        self,
        config: IatConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        capture_factory: CaptureFactory | None = None,
        poll_delay_s: float = RAASR_POLL_DELAY_S,
        max_tries: int = RAASR_POLL_MAX_TRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._capture_factory = capture_factory
        self._poll_delay_s = poll_delay_s
        self._max_tries = max_tries
        self._clock = clock

        self._state = SessionState.IDLE
        self._buffer = bytearray()
        self._capture: Any = None
        self._on_result: ResultCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._on_end: EndCallback | None = None

        self._task: asyncio.Task[None] | None = None
        self._closed_event: asyncio.Event | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def is_configured(self) -> bool:
        return bool(self._config.app_id and self._config.secret_key)

    # -------------------------------------------------------------------------
    # SpeechRecognizer
    # -------------------------------------------------------------------------

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        loop = asyncio.get_running_loop()
        if self._state.is_active:
            raise RuntimeError("recognition session already active")

        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        self._buffer = bytearray()
        self._capture = None
        self._task = None
        self._closed_event = asyncio.Event()
        self._state = SessionState.CONNECTING

        try:
            self._config.require_raasr_credentials()
        except ConfigurationError as e:
            self._finish(error=e)
            return

        try:
            if self._capture_factory is not None:
                self._capture = self._capture_factory(self._buffer.extend)
            else:
                self._capture = MicrophoneCapture(
                    on_pcm=self._buffer.extend,
                    loop=loop,
                    device=self._config.input_device,
                )
            self._capture.start()
        except CaptureError as e:
            self._finish(error=e)
            return

        self._state = SessionState.STREAMING
        log_event({"event_type": "RAASR_RECORDING"})

    def stop(self) -> None:
        """
        End recording and begin transcription.

        Before recording has started (or after it ended) this is a no-op.
        """
        if self._state is not SessionState.STREAMING:
            return

        self._state = SessionState.CLOSING
        self._release_capture()
        pcm = bytes(self._buffer)
        self._buffer = bytearray()
        self._task = asyncio.get_running_loop().create_task(self._transcribe_and_deliver(pcm))

    async def wait_closed(self) -> None:
        if self._closed_event is not None:
            await self._closed_event.wait()
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Transcription
    # -------------------------------------------------------------------------

    async def transcribe_wav(self, pcm16: bytes, duration_ms: int | None = None) -> str:
        """
        Upload 16kHz mono PCM16LE audio and wait for its transcript.

        Usable without a microphone.

        Raises:
            MissingCredentials, TransportError, TranscriptionFailed,
            TranscriptionTimeout
        """
        self._config.require_raasr_credentials()
        if duration_ms is None:
            duration_ms = pcm16_duration_ms(len(pcm16))
        wav = pcm16_to_wav(pcm16)

        with timed("raasr_transcribe", details={"wav_bytes": len(wav)}):
            if self._http_client is not None:
                return await self._upload_and_poll(self._http_client, wav, duration_ms)
            async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_S) as client:
                return await self._upload_and_poll(client, wav, duration_ms)

    async def _upload_and_poll(
        self, client: httpx.AsyncClient, wav: bytes, duration_ms: int
    ) -> str:
        order_id = await self._upload(client, wav, duration_ms)

        for attempt in range(1, self._max_tries + 1):
            body = await self._request(
                client,
                "GET",
                self._config.raasr_get_result_url,
                params={**self._signed_params(), "orderId": order_id},
            )
            order_info = body.get("orderInfo") or {}
            status = order_info.get("status")
            log_event({
                "event_type": "RAASR_POLL",
                "order_id": order_id,
                "attempt": attempt,
                "status": status,
            })

            if status == RAASR_ORDER_DONE:
                text = extract_order_text(body.get("orderResult"))
                if not text:
                    raise TranscriptionFailed("empty result", order_id)
                return text
            if status == RAASR_ORDER_FAILED:
                raise TranscriptionFailed(order_info.get("failType"), order_id)

            await asyncio.sleep(self._poll_delay_s)

        raise TranscriptionTimeout(
            f"order {order_id} not finished after {self._max_tries} polls"
        )

    async def _upload(self, client: httpx.AsyncClient, wav: bytes, duration_ms: int) -> str:
        params = {
            **self._signed_params(),
            "fileName": RAASR_FILE_NAME,
            "fileSize": len(wav),
            "duration": duration_ms,
            "language": RAASR_LANGUAGE,
            "audioMode": "fileStream",
            "standardWav": 1,
        }
        body = await self._request(
            client,
            "POST",
            self._config.raasr_upload_url,
            params=params,
            content=wav,
            headers={"Content-Type": "application/octet-stream"},
        )

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        order_id = body.get("orderId") or data.get("orderId")
        if not order_id:
            raise TranscriptionFailed("upload returned no orderId")

        log_event({
            "event_type": "RAASR_UPLOADED",
            "order_id": order_id,
            "file_size": len(wav),
            "duration_ms": duration_ms,
        })
        return str(order_id)

    async def _request(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
    ) -> dict[str, Any]:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e!r}") from e

        if response.is_error:
            raise TransportError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _signed_params(self) -> dict[str, Any]:
        app_id = self._config.app_id or ""
        ts = int(self._clock())
        return {
            "appId": app_id,
            "ts": ts,
            "signa": build_signa(app_id, ts, self._config.secret_key or ""),
        }

    # -------------------------------------------------------------------------
    # Delivery / cleanup
    # -------------------------------------------------------------------------

    async def _transcribe_and_deliver(self, pcm: bytes) -> None:
        if not pcm:
            log_event({"event_type": "RAASR_EMPTY_RECORDING"})
            self._finish(text="")
            return

        try:
            text = await self.transcribe_wav(pcm)
        except IatError as e:
            self._finish(error=e)
            return

        self._finish(text=text)

    def _release_capture(self) -> None:
        capture = self._capture
        self._capture = None
        if capture is not None:
            capture.close()

    def _finish(self, *, text: str | None = None, error: BaseException | None = None) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._release_capture()
        self._buffer = bytearray()
        self._state = SessionState.CLOSED
        if self._closed_event is not None:
            self._closed_event.set()

        if error is not None:
            log_event({
                "event_type": "RAASR_ERROR",
                "error_type": type(error).__name__,
                "error": str(error),
            })
            if self._on_error is not None:
                self._on_error(error)
            return

        log_event({"event_type": "RAASR_DONE", "chars": len(text or "")})
        if text and self._on_result is not None:
            self._on_result(text)
        if self._on_end is not None:
            self._on_end(text or "")
