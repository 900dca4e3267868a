"""Cooperative cancellation shared by the resolver, assembler and invoker."""

from __future__ import annotations

import threading

from gomobenv.errors import BuildCancelled


class CancellationToken:
    """Thread-safe flag propagated down through long-blocking operations."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self, *, operation: str) -> None:
        if self._event.is_set():
            raise BuildCancelled(
                "Operation cancelled.",
                context={"operation": operation, "reason": self._reason},
            )

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; return True early if cancelled."""
        return self._event.wait(timeout)


def check(cancel: CancellationToken | None, *, operation: str) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled(operation=operation)
