"""Tests for :mod:`pmbio.coordinator` cycle dispatch and pacing."""

from __future__ import annotations

import io
import logging
import threading

import pytest

import pmbio.coordinator as coordinator
from pmbio.calibration import ChannelKind
from pmbio.config import ChannelSource
from pmbio.coordinator import CycleCoordinator, CycleState, LaunchError
from pmbio.output import ConsoleSink


def _channels(tmp_path, values):
    kinds = [ChannelKind.VOLTAGE, ChannelKind.VOLTAGE, ChannelKind.CURRENT, ChannelKind.CURRENT]
    channels = []
    for i, (kind, value) in enumerate(zip(kinds, values)):
        path = tmp_path / f"raw{i}"
        if value is not None:
            path.write_text(f"{value}\n")
        channels.append(ChannelSource(kind, str(path)))
    return channels


@pytest.fixture
def no_sleep(monkeypatch):
    calls = []
    monkeypatch.setattr(coordinator.time, "sleep", lambda s: calls.append(s))
    return calls


def test_single_cycle_prints_each_channel_once(tmp_path):
    out = io.StringIO()
    channels = _channels(tmp_path, [511, 600, 512, 1024])
    coord = CycleCoordinator(channels, sink=ConsoleSink(out))

    report = coord.run_cycle()

    lines = out.getvalue().splitlines()
    assert lines[0] == "Reading.. loop(0)"
    assert lines[-2:] == ["", ""]
    readings = lines[1:-2]
    assert len(readings) == 4
    assert sorted(readings) == sorted(r.format() for r in report.readings)
    for ch in channels:
        assert sum(line.startswith(f"({ch.path}): Input ") for line in readings) == 1
    assert report.index == 0
    assert report.failures == 0
    assert coord.cycles_completed == 1
    assert coord.state is CycleState.AWAITING


def test_failed_channel_does_not_block_others(tmp_path, caplog):
    out = io.StringIO()
    channels = _channels(tmp_path, [511, None, 512, 1024])
    coord = CycleCoordinator(channels, sink=ConsoleSink(out))

    with caplog.at_level(logging.ERROR):
        report = coord.run_cycle()

    assert report.failures == 1
    assert len(report.readings) == 3
    assert f"Failed to open {channels[1].path}" in caplog.text


def test_unreachable_paths_repeat_without_crash(tmp_path, caplog, no_sleep):
    out = io.StringIO()
    channels = _channels(tmp_path, [None, None, None, None])
    coord = CycleCoordinator(channels, sink=ConsoleSink(out))

    with caplog.at_level(logging.ERROR, logger="pmbio.sample_reader"):
        done = coord.run(threading.Event(), max_cycles=3)

    assert done == 3
    failures = [r for r in caplog.records if r.getMessage().startswith("Failed to open")]
    assert len(failures) == 3 * 4
    assert "Reading.. loop(2)" in out.getvalue()
    assert coord.state is CycleState.TERMINATING


def test_stop_during_pacing_finishes_current_cycle(tmp_path, monkeypatch):
    out = io.StringIO()
    channels = _channels(tmp_path, [511, 511, 512, 512])
    coord = CycleCoordinator(channels, interval=0.5, sink=ConsoleSink(out))
    stop = threading.Event()
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        # keystroke lands while pacing after the second cycle
        if len(sleeps) == 2:
            assert coord.state is CycleState.PACING
            stop.set()

    monkeypatch.setattr(coordinator.time, "sleep", fake_sleep)

    done = coord.run(stop)

    assert done == 2
    assert sleeps == [0.5, 0.5]
    text = out.getvalue()
    assert "Reading.. loop(1)" in text
    assert "Reading.. loop(2)" not in text
    # the second cycle is complete: 2 headers + 8 readings + 2x2 separators
    assert len(text.splitlines()) == 2 + 8 + 4


def test_stop_already_set_runs_nothing(tmp_path, no_sleep):
    out = io.StringIO()
    stop = threading.Event()
    stop.set()
    coord = CycleCoordinator(_channels(tmp_path, [1, 2, 3, 4]), sink=ConsoleSink(out))
    assert coord.run(stop) == 0
    assert out.getvalue() == ""


class FlakyThread(threading.Thread):
    """Thread whose third start() fails like an exhausted process."""

    started = 0

    def start(self):
        FlakyThread.started += 1
        if FlakyThread.started == 3:
            raise RuntimeError("can't start new thread")
        super().start()


def test_launch_failure_raises(tmp_path, monkeypatch, no_sleep):
    FlakyThread.started = 0
    monkeypatch.setattr(coordinator, "Thread", FlakyThread)
    out = io.StringIO()
    coord = CycleCoordinator(_channels(tmp_path, [1, 2, 3, 4]), sink=ConsoleSink(out))

    with pytest.raises(LaunchError, match="can't start new thread"):
        coord.run(threading.Event())

    assert FlakyThread.started == 3
    assert coord.cycles_completed == 0
    assert coord.state is CycleState.TERMINATING
    assert no_sleep == []


def test_lines_are_not_interleaved(tmp_path):
    class SlowStream(io.StringIO):
        """Writes char by char to widen any race between threads."""

        def write(self, s):
            for ch in s:
                super().write(ch)
            return len(s)

    out = SlowStream()
    channels = _channels(tmp_path, [100, 200, 300, 400])
    coord = CycleCoordinator(channels, sink=ConsoleSink(out))
    for _ in range(5):
        coord.run_cycle()

    expected = {f"({ch.path}): Input " for ch in channels}
    for line in out.getvalue().splitlines():
        if line.startswith("("):
            assert any(line.startswith(prefix) for prefix in expected)
            assert line.count("Input") == 1
            assert line.endswith("(V)") or line.endswith("(A)")
