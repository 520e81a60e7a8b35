"""Tests for dotvault.engine.conflicts and the engine worker."""

import threading
from pathlib import Path

import pytest

from dotvault.core.models import ConflictInfo, EngineState, Resolution
from dotvault.engine.conflicts import (
    always_overwrite,
    always_rename,
    always_skip,
    interactive,
    resolver_for,
)
from dotvault.engine.worker import EngineWorker

CONFLICT = ConflictInfo("/backup/.vimrc", "/home/u/.vimrc")


class TestResolvers:
    def test_builtins(self):
        assert always_overwrite()(CONFLICT) is Resolution.OVERWRITE
        assert always_skip()(CONFLICT) is Resolution.SKIP
        assert always_rename()(CONFLICT) is Resolution.RENAME

    def test_interactive_without_prompt_overwrites(self):
        assert interactive()(CONFLICT) is Resolution.OVERWRITE

    def test_interactive_defers_to_prompt(self):
        asked = []

        def prompt(conflict):
            asked.append(conflict)
            return Resolution.RENAME

        assert interactive(prompt)(CONFLICT) is Resolution.RENAME
        assert asked == [CONFLICT]

    @pytest.mark.parametrize("name, expected", [
        ("overwrite", Resolution.OVERWRITE),
        ("Skip", Resolution.SKIP),
        (" rename ", Resolution.RENAME),
    ])
    def test_resolver_for(self, name, expected):
        assert resolver_for(name)(CONFLICT) is expected

    def test_resolver_for_unknown(self):
        with pytest.raises(ValueError, match="Unknown conflict policy"):
            resolver_for("merge")


class TestEngineWorker:
    def test_state_transitions(self):
        worker = EngineWorker("test")
        assert worker.state is EngineState.IDLE
        worker._begin()
        assert worker.is_running
        worker._finish()
        assert worker.state is EngineState.COMPLETED

    def test_cancel(self):
        worker = EngineWorker("test")
        worker._begin()
        worker.cancel()
        assert worker.cancelled
        worker._finish()
        assert worker.state is EngineState.CANCELLED
        worker._begin()
        assert not worker.cancelled

    def test_submit_and_shutdown(self):
        worker = EngineWorker("test")
        names = []
        future = worker._submit(lambda: names.append(threading.current_thread().name) or 42)
        assert future.result(timeout=10) == 42
        assert names[0].startswith("test")
        worker.shutdown()
        worker.shutdown()

    def test_shutdown_cancels_running(self, tmp_path: Path):
        worker = EngineWorker("test")
        worker._begin()
        worker.shutdown()
        assert worker.cancelled
