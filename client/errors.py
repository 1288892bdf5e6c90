"""
Error taxonomy for speech-recognition sessions.

Fatal categories (funnel through one teardown path, reported via on_error):
- ConfigurationError / MissingCredentials: fails before any network activity
- CaptureError (PermissionDenied, DeviceUnavailable): microphone acquisition
- TransportError: connection refused / dropped / send failure
- ProtocolError: server returned a nonzero status code
- TranscriptionFailed / TranscriptionTimeout: recorded-file order did not complete

Non-fatal:
- MalformedMessage: one inbound message failed to decode; session continues
"""

from __future__ import annotations


class IatError(Exception):
    """Base class for all recognition client errors."""


# -------------------------
# Configuration
# -------------------------

class ConfigurationError(IatError):
    """Client configuration is unusable."""


class MissingCredentials(ConfigurationError):
    """
    Raised when a required credential (app id / api key / api secret) is absent.

    `missing` lists the environment variable names that were not set.
    """

    def __init__(self, missing: tuple[str, ...]) -> None:
        self.missing = missing
        super().__init__(f"missing credentials: {', '.join(missing)}")


# -------------------------
# Audio capture
# -------------------------

class CaptureError(IatError):
    """Base class for microphone acquisition failures."""


class PermissionDenied(CaptureError):
    """The operating system refused access to the input device."""


class DeviceUnavailable(CaptureError):
    """No usable input device, or the device failed to open."""


# -------------------------
# Transport / protocol
# -------------------------

class TransportError(IatError):
    """Connection-level failure (refused, dropped, send failed)."""


class ProtocolError(IatError):
    """
    The provider reported a nonzero status code.

    Carries the provider's code, message, and session id (sid) when present.
    """

    def __init__(self, code: int, message: str = "", sid: str | None = None) -> None:
        self.code = code
        self.message = message
        self.sid = sid
        detail = f"recognition failed: code={code}"
        if message:
            detail += f" message={message}"
        if sid:
            detail += f" sid={sid}"
        super().__init__(detail)


class MalformedMessage(IatError):
    """
    A single inbound message could not be decoded.

    Non-fatal. `terminal` is True when the outer envelope was readable and
    still signalled end-of-session (status 2), so the caller can finish.
    """

    def __init__(self, reason: str, *, terminal: bool = False) -> None:
        self.reason = reason
        self.terminal = terminal
        super().__init__(reason)


# -------------------------
# Recorded-file transcription
# -------------------------

class TranscriptionFailed(IatError):
    """The recorded-file service reported the order as failed (status -1)."""

    def __init__(self, fail_type: object = None, order_id: str | None = None) -> None:
        self.fail_type = fail_type
        self.order_id = order_id
        super().__init__(f"transcription failed: failType={fail_type} orderId={order_id}")


class TranscriptionTimeout(IatError):
    """The order did not finish within the polling budget."""
