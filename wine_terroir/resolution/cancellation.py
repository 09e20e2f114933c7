"""Cooperative cancellation for long-running resolution work."""

import threading


class OperationCancelled(Exception):
    """Raised when a cancellation token has been triggered."""


class CancellationToken:
    """
    Thread-safe cancellation flag.

    Resolvers call ``raise_if_cancelled()`` before every store call; another
    thread (or a signal handler) calls ``cancel()``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def check(token: CancellationToken | None) -> None:
    """Raise OperationCancelled if ``token`` is set."""
    if token is not None:
        token.raise_if_cancelled()
