"""
Microphone capture.

Opens one sounddevice InputStream at the device's native rate and converts
every callback block to 16kHz PCM16LE on the PortAudio thread (pure numpy,
no blocking). The resulting bytes are handed to `on_pcm` on the asyncio loop
via call_soon_threadsafe, so the byte queue is only ever touched from the
loop thread.

Ownership:
- One MicrophoneCapture per session; exclusive use of the input device
  for the session's lifetime.
- close() is idempotent.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

from audio.pcm import Resampler
from errors import DeviceUnavailable, PermissionDenied
from observability.logger import log_event

_PERMISSION_MARKERS = ("permission", "not permitted", "denied")


def _sounddevice() -> Any:
    """
    Import sounddevice on first use.

    The import loads the PortAudio shared library, so a host without it
    fails here (OSError) rather than when this module is imported.
    """
    import sounddevice as sd  # pylint: disable=import-outside-toplevel
    return sd


class AudioCapture(Protocol):
    """Anything that can be started and torn down like MicrophoneCapture."""

    def start(self) -> None: ...

    def close(self) -> None: ...


CaptureFactory = Callable[[Callable[[bytes], None]], AudioCapture]


def _classify(exc: Exception) -> Exception:
    text = str(exc).lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return PermissionDenied(f"microphone access denied: {exc}")
    return DeviceUnavailable(f"input device unavailable: {exc}")


class MicrophoneCapture:
    """Continuous microphone capture producing 16kHz PCM16LE byte buffers."""

    def __init__(
        self,
        *,
        on_pcm: Callable[[bytes], None],
        loop: asyncio.AbstractEventLoop,
        device: int | str | None = None,
        blocksize: int = 0,
    ) -> None:
        self._on_pcm = on_pcm
        self._loop = loop
        self._device = device
        self._blocksize = blocksize

        self._sd: Any = None
        self._stream: Any = None
        self._resampler: Resampler | None = None
        self._closed = False

    @property
    def device_rate(self) -> int | None:
        return self._resampler.device_rate if self._resampler else None

    def start(self) -> None:
        """
        Acquire the input device and begin streaming.

        Raises:
            PermissionDenied: the OS refused microphone access.
            DeviceUnavailable: no input device, or PortAudio failed to open it.
        """
        if self._stream is not None:
            return

        try:
            sd = _sounddevice()
        except OSError as e:
            raise DeviceUnavailable(f"audio backend unavailable: {e}") from e
        self._sd = sd

        try:
            info: Any = sd.query_devices(self._device, "input")
            device_rate = int(info["default_samplerate"])
        except (ValueError, sd.PortAudioError) as e:
            raise _classify(e) from e

        self._resampler = Resampler(device_rate)

        try:
            stream = sd.InputStream(
                samplerate=device_rate,
                channels=1,
                dtype="float32",
                blocksize=self._blocksize,
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise _classify(e) from e

        self._stream = stream
        self._closed = False
        log_event({
            "event_type": "CAPTURE_STARTED",
            "device": self._device,
            "device_rate_hz": device_rate,
        })

    def close(self) -> None:
        """Stop and release the device. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        stream = self._stream
        self._stream = None
        if stream is None:
            return

        try:
            stream.stop()
            stream.close()
        except self._sd.PortAudioError as e:
            log_event({
                "event_type": "CAPTURE_CLOSE_FAILED",
                "error": repr(e),
            })
            return

        log_event({"event_type": "CAPTURE_STOPPED"})

    # ------------------------------------------------------------------
    # PortAudio thread
    # ------------------------------------------------------------------

    def _callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
        if self._closed or self._resampler is None or self._loop.is_closed():
            return

        pcm = self._resampler(indata)
        if pcm:
            self._loop.call_soon_threadsafe(self._on_pcm, pcm)
