from __future__ import annotations

import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from devserve.core import subprocess_tracker


@pytest.fixture(autouse=True)
def isolated_tracker(tmp_path: Path):
    """Point the tracker at a temp dir and clear state around each test."""
    subprocess_tracker._pids.clear()
    pid_file = subprocess_tracker.configure(tmp_path / "data")
    yield pid_file
    subprocess_tracker._pids.clear()
    subprocess_tracker._pid_file = None


class TestTracking:
    def test_track_persists(self, isolated_tracker: Path):
        subprocess_tracker.track(4321)
        subprocess_tracker.track(1234)
        assert subprocess_tracker.tracked() == {1234, 4321}
        assert isolated_tracker.read_text() == "1234\n4321\n"

    def test_untrack(self, isolated_tracker: Path):
        subprocess_tracker.track(1234)
        subprocess_tracker.untrack(1234)
        subprocess_tracker.untrack(9999)
        assert subprocess_tracker.tracked() == frozenset()
        assert isolated_tracker.read_text() == ""

    def test_terminate_all(self, isolated_tracker: Path):
        subprocess_tracker.track(11)
        subprocess_tracker.track(22)
        with patch("devserve.core.subprocess_tracker.os.kill") as mock_kill:
            mock_kill.side_effect = [None, ProcessLookupError()]
            subprocess_tracker.terminate_all()

        assert [c.args for c in mock_kill.call_args_list] == [
            (11, signal.SIGTERM), (22, signal.SIGTERM),
        ]
        assert subprocess_tracker.tracked() == frozenset()


class TestReapStale:
    def test_no_pid_file(self):
        assert subprocess_tracker.reap_stale() == 0

    def test_reaps_and_removes_file(self, isolated_tracker: Path):
        isolated_tracker.parent.mkdir(parents=True)
        isolated_tracker.write_text("101\n202\ngarbage\n")
        with patch("devserve.core.subprocess_tracker.os.kill") as mock_kill:
            mock_kill.side_effect = [None, ProcessLookupError()]
            assert subprocess_tracker.reap_stale() == 1

        assert mock_kill.call_count == 2
        assert not isolated_tracker.exists()

    def test_unconfigured(self):
        subprocess_tracker._pid_file = None
        subprocess_tracker.track(5)
        assert subprocess_tracker.reap_stale() == 0
