from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any

from PySide6.QtCore import QObject, Signal, Slot

from cloud_notes.errors import RequestFailure
from cloud_notes.logger import get_logger

_logger = get_logger("requests")


class RequestHandle:
    """Cancellable handle of one backend request.

    Callbacks run on the runner's thread, at most once, and never after cancel().
    """

    def __init__(
        self,
        name: str,
        on_success: Callable[[Any], None] | None = None,
        on_failure: Callable[[RequestFailure], None] | None = None,
    ) -> None:
        self.name = name
        self._on_success = on_success
        self._on_failure = on_failure
        self._future: Future | None = None
        self._cancelled = False
        self._finished = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    def cancel(self) -> None:
        with self._lock:
            if self._finished or self._cancelled:
                return
            self._cancelled = True
            future = self._future
        if future is not None:
            future.cancel()
        _logger.debug("request cancelled: %s", self.name)

    def _attach(self, future: Future) -> None:
        with self._lock:
            self._future = future

    def _finish(self) -> bool:
        """Mark finished; returns False when the outcome must be dropped."""
        with self._lock:
            self._finished = True
            deliver = not self._cancelled
            if not deliver:
                self._on_success = None
                self._on_failure = None
            return deliver


class RequestRunner(QObject):
    """Runs blocking backend calls on a worker pool.

    Completions are emitted from the worker thread and delivered through a queued
    signal to the thread owning the runner (the Qt main thread), so success and
    failure callbacks may mutate UI state.
    """

    _completed = Signal(object, object, object)  # handle, result, error

    def __init__(
        self,
        executor: Executor | None = None,
        max_workers: int = 4,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.pool = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cloud_notes")
        self._outstanding: set[RequestHandle] = set()
        self._lock = threading.Lock()
        self._closed = False
        self._completed.connect(self._deliver)

    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        on_success: Callable[[Any], None] | None = None,
        on_failure: Callable[[RequestFailure], None] | None = None,
    ) -> RequestHandle:
        handle = RequestHandle(name, on_success=on_success, on_failure=on_failure)
        if self._closed:
            _logger.warning("request dropped after shutdown: %s", name)
            handle._finish()
            return handle

        with self._lock:
            self._outstanding.add(handle)
        try:
            future = self.pool.submit(fn, *args)
        except Exception as e:
            _logger.exception("submit failed for %s", name)
            self._completed.emit(handle, None, e)
            return handle

        handle._attach(future)
        future.add_done_callback(lambda f, h=handle: self._on_future_done(h, f))
        _logger.debug("request submitted: %s", name)
        return handle

    def _on_future_done(self, handle: RequestHandle, future: Future) -> None:
        # Worker thread (or the cancelling thread); only hand the outcome over.
        if future.cancelled():
            self._completed.emit(handle, None, None)
            return
        error = future.exception()
        self._completed.emit(handle, None if error is not None else future.result(), error)

    @Slot(object, object, object)
    def _deliver(self, handle: RequestHandle, result: Any, error: BaseException | None) -> None:
        with self._lock:
            self._outstanding.discard(handle)

        on_success = handle._on_success
        on_failure = handle._on_failure
        if not handle._finish():
            _logger.debug("request outcome dropped (cancelled): %s", handle.name)
            return

        if error is not None:
            failure = RequestFailure(handle.name, error)
            _logger.error("%s", failure)
            callback, arg = on_failure, failure
        else:
            callback, arg = on_success, result

        if callback is None:
            return
        try:
            callback(arg)
        except Exception:
            _logger.exception("completion callback failed for %s", handle.name)

    def outstanding(self) -> list[RequestHandle]:
        with self._lock:
            return list(self._outstanding)

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handle in self.outstanding():
            handle.cancel()
        self.pool.shutdown(wait=False, cancel_futures=True)
