from __future__ import annotations

import threading
import time


class CallContext:
    """
    Cancellation and deadline signal for one logical call.

    Shared by the caller and the executor: the caller may cancel() from any
    thread, and every wait inside the executor (rate-limit admission,
    backoff sleep) wakes up as soon as that happens. A deadline, when set,
    also bounds the per-attempt transport timeout.

    Example:
        >>> ctx = CallContext(timeout_s=5)
        >>> client.execute("GET", "/open_api/v1.3/advertiser/info/", context=ctx)
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout_s if timeout_s is not None else None
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._cancelled.is_set():
            self._reason = reason
            self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    @property
    def reason(self) -> str | None:
        if self.cancelled:
            return self._reason
        if self.expired:
            return "deadline exceeded"
        return None

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if the context finished meanwhile."""
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._cancelled.wait(remaining)
            return True
        self._cancelled.wait(max(0.0, seconds))
        return self.done
