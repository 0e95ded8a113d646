"""
Probing session engine.

Lifecycle: resolve the target once, then probe once per tick until the
count is reached or a stop is requested, then compute and persist the final
session snapshot exactly once.

Two accumulators run side by side:
1. Session window: every probe of the run, never reset
2. Interval window: probes since the last auto-save, reset after each flush

Stop requests (SIGINT, another thread) only set a flag and wake the loop.
The loop abandons an in-flight probe and runs the final flush itself, so the
flush always completes before run() returns.
"""

import asyncio
import sys
import threading
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

from ..errors import ProbeError, RecorderError
from .histogram import DEFAULT_BUCKETS, Histogram
from .prober import Prober, resolve_target
from .recorder import Recorder, get_recorder
from .stats import SessionStats, StatsSnapshot

if TYPE_CHECKING:
    from ..config import ProbeConfig


class StatsWindow:
    """Sent counter and latency samples for one reporting window."""

    def __init__(self, target: str, buckets: Iterable[tuple[int, str]] = DEFAULT_BUCKETS):
        self.stats = SessionStats(target, Histogram(buckets))
        self.sent: int = 0
        self.samples: list[float] = []

    def compute(self) -> StatsSnapshot:
        return self.stats.recompute(self.sent, self.samples)


class SessionState:
    """
    Session and interval windows behind a single lock.

    The probing loop writes through record_sent()/record_sample(); monitor
    threads read through session_snapshot(). Every method holds the lock for
    a short, non-blocking section. Once close() has run, further records are
    ignored and close() returns None.
    """

    def __init__(self, target: str, buckets: Iterable[tuple[int, str]] = DEFAULT_BUCKETS):
        self.target = target
        self._buckets = tuple(buckets)
        self._lock = threading.Lock()
        self.session = StatsWindow(target, self._buckets)
        self.interval = StatsWindow(target, self._buckets)
        self.closed = False

    def record_sent(self):
        with self._lock:
            if self.closed:
                return
            self.session.sent += 1
            self.interval.sent += 1

    def record_sample(self, latency_ms: float):
        with self._lock:
            if self.closed:
                return
            self.session.samples.append(latency_ms)
            self.interval.samples.append(latency_ms)

    def session_snapshot(self) -> StatsSnapshot:
        """Recompute and return the session-wide statistics so far."""
        with self._lock:
            return self.session.compute()

    def flush_interval(self, persist: Callable[[StatsSnapshot], None]) -> StatsSnapshot:
        """Compute the interval snapshot, hand it to persist, then start a new interval."""
        with self._lock:
            snapshot = self.interval.compute()
            try:
                persist(snapshot)
            finally:
                self.interval = StatsWindow(self.target, self._buckets)
            return snapshot

    def close(self, persist: Optional[Callable[[StatsSnapshot], None]] = None) -> Optional[StatsSnapshot]:
        """Compute the final session snapshot and persist it. Runs at most once."""
        with self._lock:
            if self.closed:
                return None
            self.closed = True
            snapshot = self.session.compute()
            if persist is not None:
                persist(snapshot)
            return snapshot


class SessionEngine:
    """
    Drives one probing session.

    Args:
        config: Session settings.
        prober: Transport used for each probe.
        recorder: Snapshot recorder. Defaults to the one matching config.output_kind.
        resolver: Async host -> address resolver (default: resolve_target).
        clock: Monotonic clock in seconds, used for the auto-save timer.
        on_probe: Optional callback after each completed tick.
                  Signature: (engine: SessionEngine, seq: int, latency_ms: float | None) -> None
        quiet: Suppress per-probe output lines and the interrupt notice.
        buckets: Histogram bucket layout, (lower_bound_ms, name) pairs.

    Example:
        >>> async with IcmpProber() as prober:
        ...     engine = SessionEngine(ProbeConfig(target="1.1.1.1", count=5), prober)
        ...     final = await engine.run()
    """

    def __init__(
        self,
        config: "ProbeConfig",
        prober: Prober,
        recorder: Optional[Recorder] = None,
        resolver: Callable[[str], Awaitable[str]] = resolve_target,
        clock: Callable[[], float] = time.monotonic,
        on_probe: Optional[Callable[["SessionEngine", int, Optional[float]], None]] = None,
        quiet: bool = False,
        buckets: Iterable[tuple[int, str]] = DEFAULT_BUCKETS,
    ):
        self.config = config
        self.prober = prober
        self.buckets = tuple(buckets)
        self.recorder = recorder or get_recorder(config.output_kind, [name for _, name in self.buckets])
        self.save_path = config.save_path
        self.on_probe = on_probe
        self.quiet = quiet
        self._resolver = resolver
        self._clock = clock

        self.address: Optional[str] = None
        self.state: Optional[SessionState] = None
        self.phase = "idle"
        self.interrupted = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False

    def request_stop(self):
        """
        Request the interrupt path: stop probing, persist the session, return.

        Safe to call from signal handlers and other threads.
        """
        self._stop_requested = True
        loop = self._loop
        if loop is None or self._stop_event is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._stop_event.set)
        except RuntimeError:
            # Loop closed after the check; run() has already returned
            return

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def snapshot(self) -> Optional[StatsSnapshot]:
        """Current session-wide statistics, or None before probing starts."""
        if self.state is None:
            return None
        return self.state.session_snapshot()

    async def run(self) -> Optional[StatsSnapshot]:
        """
        Resolve, probe and finalize.

        Returns the final session snapshot, or None if a stop was requested
        before probing started.

        Raises:
            ResolutionError: If the target cannot be resolved.
            UnsupportedAddressError: If the target resolves to IPv6 only.
            TransportError: If the prober cannot be opened.
        """
        if self.phase != "idle":
            raise RuntimeError("Engine already ran")

        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()

        try:
            self.phase = "resolving"
            self.address = await self._resolver(self.config.target)
            self.state = SessionState(self.address, self.buckets)

            await self.prober.open()
            try:
                if self._stop_event.is_set():
                    return None

                self.phase = "probing"
                print(f"Pinging {self.address}...")
                try:
                    interrupted = await self._probe_loop()
                except asyncio.CancelledError:
                    self._finalize(interrupted=True)
                    raise

                self.phase = "finalizing"
                return self._finalize(interrupted)
            finally:
                await self.prober.close()
        finally:
            self.phase = "done"

    # =========================================================================
    # Internal
    # =========================================================================

    async def _probe_loop(self) -> bool:
        """Probe once per tick. Returns True if stopped by request."""
        count = self.config.count
        save_interval = self.config.save_interval
        last_save = self._clock()
        seq = 0

        while count is None or seq < count:
            if self._stop_event.is_set():
                return True

            tick_start = self._loop.time()
            self.state.record_sent()

            latency = await self._probe_once(seq)
            if latency is not None:
                self.state.record_sample(latency)
            if self._stop_event.is_set():
                return True

            if save_interval is not None:
                now = self._clock()
                if now - last_save >= save_interval:
                    self._flush_interval()
                    last_save = now

            if self.on_probe:
                self.on_probe(self, seq, latency)

            seq += 1
            if count is not None and seq >= count:
                break

            remaining = self.config.tick - (self._loop.time() - tick_start)
            if await self._wait_for_stop(remaining):
                return True

        return False

    async def _probe_once(self, seq: int) -> Optional[float]:
        """One probe raced against the stop event. None means lost or abandoned."""
        probe = asyncio.ensure_future(
            self.prober.send_probe(self.address, self.config.packet_size, self.config.timeout)
        )
        stop = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({probe, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (probe, stop):
                if not task.done():
                    task.cancel()
            await asyncio.gather(probe, stop, return_exceptions=True)

        if probe.cancelled():
            return None
        try:
            latency = probe.result()
        except ProbeError as e:
            if not self.quiet:
                print(f"Request timed out or error: {e}")
            return None

        if not self.quiet:
            print(f"Reply from {self.address}: icmp_seq={seq} time={latency:.2f}ms")
        return latency

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to delay seconds. Returns True if a stop arrived."""
        if delay <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _persist(self, snapshot: StatsSnapshot, saved: str, failed: str) -> bool:
        try:
            self.recorder.append(snapshot, self.save_path)
        except RecorderError as e:
            print(f"{failed}: {e}", file=sys.stderr)
            return False
        print(saved)
        return True

    def _flush_interval(self) -> StatsSnapshot:
        return self.state.flush_interval(
            lambda snapshot: self._persist(
                snapshot,
                saved=f"\n--- Auto-saved interval results to {self.save_path} ---\n",
                failed="Failed to auto-save results",
            )
        )

    def _finalize(self, interrupted: bool) -> Optional[StatsSnapshot]:
        self.interrupted = interrupted
        if interrupted and not self.quiet:
            print("\nInterrupted by user. Saving results...")

        def persist(snapshot: StatsSnapshot):
            if interrupted:
                self._persist(snapshot, f"Results saved to {self.save_path}", "Failed to save results on exit")
            elif snapshot.sent > 0:
                self._persist(snapshot, f"Final results saved to {self.save_path}", "Failed to save final results")

        snapshot = self.state.close(persist)
        if snapshot is not None and (interrupted or snapshot.sent > 0):
            print()
            print(snapshot.summary())
        return snapshot
