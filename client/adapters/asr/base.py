"""
Speech recognizer contract.

This module defines the *interface only*. Both recognizers (the real-time
streaming client and the record-then-upload client) implement it, so the
embedding UI can swap one for the other.

Key invariants:
- start() never blocks; progress is driven by the asyncio loop.
- Exactly one terminal callback per start(): on_end(final_text) or a
  fatal on_error(exc). on_result may fire any number of times before it.
- stop() is the only cancellation entry point and is safe in every state.
- No automatic retry; the caller decides whether to start() again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[BaseException], None]
EndCallback = Callable[[str], None]


class SpeechRecognizer(ABC):
    """
    Abstract microphone-to-text recognizer.

    Non-responsibilities:
    - No UI state, rendering, or transcript display
    - No retries
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """True if all credentials needed by start() are present."""
        raise NotImplementedError

    @abstractmethod
    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        """
        Begin one recognition session.

        Must be called from a running asyncio loop. Returns immediately;
        configuration errors are reported through on_error, not raised.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """
        End audio input for the current session.

        Contract:
        - Idempotent: repeated calls, or a call before start(), are no-ops.
        - Never invokes a callback a second time.
        - Resources are released soon after, not necessarily on return;
          await wait_closed() to observe release.
        """
        raise NotImplementedError

    @abstractmethod
    async def wait_closed(self) -> None:
        """Wait until every resource of the current session is released."""
        raise NotImplementedError
