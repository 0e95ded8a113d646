"""Tests for the probing session engine."""

import asyncio
import itertools
import json
import threading

import pytest

from fakes import TEST_ADDRESS, FailingRecorder, ScriptedProber, fake_resolve
from pingstat import ProbeConfig
from pingstat.errors import ProbeError, ProbeTimeout, ResolutionError
from pingstat.session import SessionEngine, SessionState


def make_config(tmp_path, **kwargs):
    kwargs.setdefault("target", "probe.test")
    kwargs.setdefault("tick", 0)
    kwargs.setdefault("directory", tmp_path)
    return ProbeConfig(**kwargs)


def read_history(config):
    return json.loads(config.save_path.read_text())


def counting_clock():
    counter = itertools.count()
    return lambda: next(counter)


# =========================================================================
# SessionState
# =========================================================================


def test_state_records_into_both_windows():
    state = SessionState(TEST_ADDRESS)
    state.record_sent()
    state.record_sample(12.0)
    state.record_sent()

    assert state.session.sent == 2
    assert state.interval.sent == 2
    assert state.session.samples == [12.0]
    assert state.interval.samples == [12.0]


def test_interval_flush_resets_interval_only():
    """Test an interval flush clears the interval window and leaves the session alone."""
    state = SessionState(TEST_ADDRESS)
    for latency in (10.0, 20.0):
        state.record_sent()
        state.record_sample(latency)
    state.record_sent()

    persisted = []
    snapshot = state.flush_interval(persisted.append)

    assert persisted == [snapshot]
    assert snapshot.sent == 3
    assert snapshot.received == 2
    assert state.interval.sent == 0
    assert state.interval.samples == []
    assert state.session.sent == 3
    assert state.session.samples == [10.0, 20.0]


def test_interval_resets_even_if_persist_fails():
    state = SessionState(TEST_ADDRESS)
    state.record_sent()

    def persist(snapshot):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        state.flush_interval(persist)
    assert state.interval.sent == 0
    assert state.session.sent == 1


def test_close_runs_once():
    """Test the final snapshot is produced and persisted at most once."""
    state = SessionState(TEST_ADDRESS)
    state.record_sent()
    persisted = []

    first = state.close(persisted.append)
    second = state.close(persisted.append)

    assert first.sent == 1
    assert second is None
    assert len(persisted) == 1

    # Records after close are ignored
    state.record_sent()
    state.record_sample(5.0)
    assert state.session.sent == 1
    assert state.session.samples == []


def test_state_consistent_under_concurrent_readers():
    """Test snapshots taken from other threads never see received > sent."""
    state = SessionState(TEST_ADDRESS)
    errors = []
    done = threading.Event()

    def writer():
        for i in range(2000):
            state.record_sent()
            if i % 3:
                state.record_sample(float(i % 1200))
        done.set()

    def reader():
        while not done.is_set():
            snap = state.session_snapshot()
            if snap.received > snap.sent or sum(snap.latency_buckets.values()) != snap.received:
                errors.append(snap)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert state.session_snapshot().sent == 2000


# =========================================================================
# SessionEngine
# =========================================================================


def test_bounded_run_persists_final_snapshot(tmp_path, capsys):
    """Test a bounded run probes count times and persists one snapshot."""
    config = make_config(tmp_path, count=4)
    prober = ScriptedProber([20.0, ProbeTimeout("no reply within 4s"), 30.0, 1200.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve)

    final = asyncio.run(engine.run())

    assert prober.calls == 4
    assert prober.opened and prober.closed
    assert engine.phase == "done"
    assert not engine.interrupted
    assert final.target == TEST_ADDRESS
    assert final.sent == 4
    assert final.received == 3
    assert final.loss_percent == pytest.approx(25.0)
    assert final.min == 20.0
    assert final.max == 1200.0

    history = read_history(config)
    assert len(history) == 1
    assert history[0]["latency_buckets"][">= 1000ms"] == 1

    out = capsys.readouterr().out
    assert f"Pinging {TEST_ADDRESS}..." in out
    assert "Request timed out or error: no reply within 4s" in out
    assert f"Reply from {TEST_ADDRESS}: icmp_seq=2 time=30.00ms" in out
    assert "Final results saved to" in out
    assert "=== Current Session Stats ===" in out


def test_all_probes_lost(tmp_path):
    """Test a run with no replies persists absent latencies."""
    config = make_config(tmp_path, count=3)
    prober = ScriptedProber([ProbeError("unreachable")] * 3)
    final = asyncio.run(SessionEngine(config, prober, resolver=fake_resolve).run())

    assert final.received == 0
    assert final.loss_percent == 100.0
    entry = read_history(config)[0]
    assert entry["min"] is None and entry["avg"] is None


def test_auto_save_flushes_intervals(tmp_path, capsys):
    """Test interval snapshots cover only their own probes while the session keeps totals."""
    config = make_config(tmp_path, count=5, save_interval=2)
    prober = ScriptedProber([10.0, 20.0, ProbeTimeout("timeout"), 30.0, 40.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve, clock=counting_clock())

    final = asyncio.run(engine.run())

    history = read_history(config)
    assert len(history) == 3

    first, second, last = history
    assert (first["sent"], first["received"]) == (2, 2)
    assert first["loss_percent"] == 0.0
    assert (second["sent"], second["received"]) == (2, 1)
    assert second["loss_percent"] == pytest.approx(50.0)
    assert second["min"] == 30.0
    assert (last["sent"], last["received"]) == (5, 4)
    assert final.loss_percent == pytest.approx(20.0)
    assert "Auto-saved interval results" in capsys.readouterr().out


def test_interrupt_persists_once_and_stops(tmp_path, capsys):
    """Test a stop during an in-flight probe abandons it and persists the session once."""
    config = make_config(tmp_path)
    prober = ScriptedProber([10.5, 12.25])
    engine = SessionEngine(config, prober, resolver=fake_resolve)
    prober.on_call = lambda n: engine.request_stop() if n == 3 else None

    final = asyncio.run(engine.run())

    assert engine.interrupted
    assert prober.calls == 3
    assert final.sent == 3
    assert final.received == 2
    assert final.loss_percent == pytest.approx(33.333, abs=0.01)
    assert final.min == 10.5
    assert final.max == 12.25
    assert final.avg == pytest.approx(11.375)

    history = read_history(config)
    assert len(history) == 1
    assert history[0]["sent"] == 3

    out = capsys.readouterr().out
    assert "Interrupted by user. Saving results..." in out
    assert "Results saved to" in out


def test_interrupt_during_tick_wait(tmp_path):
    """Test a stop arriving while waiting for the next tick ends the run promptly."""
    config = make_config(tmp_path, tick=30)
    prober = ScriptedProber([], default=5.0)
    engine = SessionEngine(config, prober, resolver=fake_resolve)

    async def scenario():
        task = asyncio.create_task(engine.run())
        while prober.calls < 1:
            await asyncio.sleep(0)
        await asyncio.sleep(0.05)
        engine.request_stop()
        return await asyncio.wait_for(task, 5)

    final = asyncio.run(scenario())
    assert final.sent == 1
    assert final.received == 1
    assert len(read_history(config)) == 1


def test_stop_from_another_thread(tmp_path):
    config = make_config(tmp_path, tick=0.01)
    prober = ScriptedProber([], default=1.0)
    engine = SessionEngine(config, prober, resolver=fake_resolve, quiet=True)
    prober.on_call = lambda n: threading.Thread(target=engine.request_stop).start() if n == 5 else None

    final = asyncio.run(engine.run())

    assert engine.interrupted
    assert final.sent >= 5
    assert len(read_history(config)) == 1


def test_stop_before_probing(tmp_path):
    """Test a stop requested before probing starts persists nothing."""
    config = make_config(tmp_path, count=3)
    prober = ScriptedProber([1.0, 2.0, 3.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve)
    engine.request_stop()

    assert asyncio.run(engine.run()) is None
    assert prober.calls == 0
    assert not config.save_path.exists()


def test_cancelled_run_still_flushes(tmp_path):
    """Test cancelling the run task still persists the session before propagating."""
    config = make_config(tmp_path)
    prober = ScriptedProber([5.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve)

    async def scenario():
        task = asyncio.create_task(engine.run())
        while prober.calls < 2:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    history = read_history(config)
    assert len(history) == 1
    assert (history[0]["sent"], history[0]["received"]) == (2, 1)
    assert prober.closed


def test_persistence_failures_are_not_fatal(tmp_path, capsys):
    """Test interval and final flush failures are reported and the run completes."""
    config = make_config(tmp_path, count=3, save_interval=1)
    recorder = FailingRecorder()
    engine = SessionEngine(
        config, ScriptedProber([1.0, 2.0, 3.0]),
        recorder=recorder, resolver=fake_resolve, clock=counting_clock(),
    )

    final = asyncio.run(engine.run())

    assert final.sent == 3
    assert recorder.attempts == 4  # three intervals + final
    err = capsys.readouterr().err
    assert "Failed to auto-save results: disk full" in err
    assert "Failed to save final results: disk full" in err


def test_interrupt_persistence_failure_reported(tmp_path, capsys):
    config = make_config(tmp_path)
    prober = ScriptedProber([1.0])
    engine = SessionEngine(config, prober, recorder=FailingRecorder(), resolver=fake_resolve)
    prober.on_call = lambda n: engine.request_stop() if n == 2 else None

    final = asyncio.run(engine.run())

    assert final.sent == 2
    assert "Failed to save results on exit: disk full" in capsys.readouterr().err


def test_resolution_failure_is_fatal(tmp_path):
    """Test resolution errors abort before the prober is opened."""
    async def failing_resolve(host):
        raise ResolutionError(f"Could not resolve host {host!r}")

    prober = ScriptedProber([1.0])
    engine = SessionEngine(make_config(tmp_path, count=1), prober, resolver=failing_resolve)

    with pytest.raises(ResolutionError):
        asyncio.run(engine.run())
    assert not prober.opened
    assert engine.phase == "done"


def test_on_probe_callback_and_csv(tmp_path):
    """Test per-probe callbacks and csv output selection."""
    config = make_config(tmp_path, count=3, output_kind="csv")
    seen = []
    engine = SessionEngine(
        config, ScriptedProber([1.0, ProbeTimeout("t"), 3.0]),
        resolver=fake_resolve, on_probe=lambda e, seq, latency: seen.append((seq, latency)),
    )

    asyncio.run(engine.run())

    assert seen == [(0, 1.0), (1, None), (2, 3.0)]
    assert config.save_path.suffix == ".csv"
    lines = config.save_path.read_text().splitlines()
    assert lines[0].startswith("target,timestamp,sent")
    assert len(lines) == 2


def test_engine_runs_once(tmp_path):
    engine = SessionEngine(make_config(tmp_path, count=1), ScriptedProber([1.0]), resolver=fake_resolve)
    asyncio.run(engine.run())
    with pytest.raises(RuntimeError):
        asyncio.run(engine.run())


def test_undecodable_history_is_not_fatal(tmp_path, capsys):
    """Test a history file that is not UTF-8 is reported and the run still completes."""
    config = make_config(tmp_path, count=3, save_interval=1)
    config.save_path.write_bytes(b"\xff\xfe\x00garbage")
    prober = ScriptedProber([1.0, 2.0, 3.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve, clock=counting_clock())

    final = asyncio.run(engine.run())

    assert prober.calls == 3
    assert final.sent == 3
    assert config.save_path.read_bytes() == b"\xff\xfe\x00garbage"
    err = capsys.readouterr().err
    assert "Failed to auto-save results" in err
    assert "Failed to save final results" in err


def test_quiet_stop_prints_no_interrupt_notice(tmp_path, capsys):
    config = make_config(tmp_path)
    prober = ScriptedProber([1.0])
    engine = SessionEngine(config, prober, resolver=fake_resolve, quiet=True)
    prober.on_call = lambda n: engine.request_stop() if n == 2 else None

    final = asyncio.run(engine.run())

    assert final.sent == 2
    assert "Interrupted by user" not in capsys.readouterr().out
    assert len(read_history(config)) == 1
