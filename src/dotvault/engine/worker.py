"""Shared run-state, cancellation flag, and single worker thread for the engines."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from dotvault.core.models import EngineState

log = logging.getLogger(__name__)


class EngineWorker:
    """Base for BackupEngine and RestoreEngine.

    One operation at a time per instance: callers must not start a second
    run while one is in flight. ``cancel()`` may be called from any thread
    and stops the current run between files.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._cancelled = threading.Event()
        self._state = EngineState.IDLE
        self._state_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._queued = threading.local()

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is EngineState.RUNNING

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Ask the running or queued operation to stop after the current file.

        A cancel issued after ``submit()`` applies to that submission even if
        its run has not started yet. A synchronous ``backup()``/``restore()``
        call starts with a fresh flag.
        """
        self._cancelled.set()
        log.info("%s: cancellation requested", self._name)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel any running operation and stop the worker thread."""
        if self.is_running:
            self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None

    def _submit(self, fn: Callable, *args, **kwargs) -> Future:
        self._cancelled.clear()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._name)
        return self._executor.submit(self._call_queued, fn, *args, **kwargs)

    def _call_queued(self, fn: Callable, *args, **kwargs):
        self._queued.active = True
        try:
            return fn(*args, **kwargs)
        finally:
            self._queued.active = False

    def _begin(self) -> None:
        # Queued runs keep the flag set by _submit() and any later cancel().
        if not getattr(self._queued, "active", False):
            self._cancelled.clear()
        with self._state_lock:
            self._state = EngineState.RUNNING

    def _finish(self) -> None:
        with self._state_lock:
            self._state = EngineState.CANCELLED if self._cancelled.is_set() else EngineState.COMPLETED
