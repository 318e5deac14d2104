"""Cancellation contexts, context-aware sleeping and YAML file loading."""

from __future__ import annotations

import threading
from typing import Any

import yaml


class ContextCancelledError(Exception):
    """Raised when a context has been cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceededError(TimeoutError):
    """Raised when a context's deadline has passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal that propagates from a parent to its children."""

    def __init__(self, parent: Context | None = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._err: Exception | None = None
        self._children: set[Context] = set()
        self._parent = parent
        self._timer: threading.Timer | None = None
        if parent is not None:
            parent._attach(self)

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def _attach(self, child: Context) -> None:
        with self._lock:
            err = self._err
            if err is None:
                self._children.add(child)
                return
        child._cancel(err)

    def _detach(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    def _cancel(self, err: Exception) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            children = list(self._children)
            self._children.clear()
            timer, self._timer = self._timer, None
        self._done.set()
        if timer is not None:
            timer.cancel()
        for child in children:
            child._cancel(err)
        if self._parent is not None:
            self._parent._detach(self)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancel(ContextCancelledError())

    def done(self) -> bool:
        """Return True once the context is cancelled or its deadline has passed."""
        return self._done.is_set()

    def error(self) -> Exception | None:
        """Return the reason the context ended, or None while it is still live."""
        with self._lock:
            return self._err

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context ends or timeout seconds pass; True if it ended."""
        return self._done.wait(timeout)

    def with_cancel(self) -> Context:
        """Return a child context that can be cancelled on its own."""
        return Context(self)

    def with_timeout(self, timeout: float) -> Context:
        """Return a child context that ends after timeout seconds."""
        child = Context(self)
        if timeout <= 0:
            child._cancel(DeadlineExceededError())
            return child
        timer = threading.Timer(timeout, child._cancel, args=(DeadlineExceededError(),))
        timer.daemon = True
        with child._lock:
            start = child._err is None
            if start:
                child._timer = timer
        if start:
            timer.start()
        return child


def sleep_with_context(ctx: Context, duration: float) -> None:
    """Sleep for duration seconds, raising the context's error if it ends first."""
    if ctx.wait(max(duration, 0)):
        err = ctx.error()
        if err is not None:
            raise err


def read_and_unmarshal(filename: str) -> Any:
    """Read a YAML file and return its parsed content; an empty file gives {}."""
    with open(filename, encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    return {} if data is None else data