"""
Synchronous wrapper for a probing session.

Runs the async engine in a background thread, providing thread-safe sync
access to the live session statistics.

Example:
    >>> from pingstat import PingMonitor, ProbeConfig
    >>> with PingMonitor(ProbeConfig(target="1.1.1.1")) as monitor:
    ...     time.sleep(10)
    ...     print(monitor.stats().loss_percent)
"""

import asyncio
import threading
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..errors import PingstatError
from .engine import SessionEngine
from .prober import IcmpProber, Prober, resolve_target
from .stats import StatsSnapshot

if TYPE_CHECKING:
    from ..config import ProbeConfig


class PingMonitor:
    """
    Probing session in a background thread.

    stop() takes the same path as an operator interrupt: the session
    snapshot is persisted once and returned.

    Args:
        config: Session settings.
        prober_factory: Builds the prober inside the background thread (default: IcmpProber).
        resolver: Async host -> address resolver (default: resolve_target).
        on_probe: Optional callback after each probe.
                  Signature: (monitor: PingMonitor, seq: int, latency_ms: float | None) -> None
    """

    def __init__(
        self,
        config: "ProbeConfig",
        prober_factory: Callable[[], Prober] = IcmpProber,
        resolver: Callable[[str], Awaitable[str]] = resolve_target,
        on_probe: Optional[Callable[["PingMonitor", int, Optional[float]], None]] = None,
    ):
        self.config = config
        self._prober_factory = prober_factory
        self._resolver = resolver
        self._user_callback = on_probe

        # Thread and engine state
        self._thread: Optional[threading.Thread] = None
        self._engine: Optional[SessionEngine] = None

        # Synchronization
        self._lock = threading.RLock()
        self._first_probe = threading.Event()
        self._finished = threading.Event()
        self._result: Optional[StatsSnapshot] = None
        self._error: Optional[Exception] = None

    def start(self) -> "PingMonitor":
        """Start the background probing thread. Returns self for chaining."""
        if self._thread is not None:
            raise RuntimeError("Monitor already started")

        self._first_probe.clear()
        self._finished.clear()
        self._result = None
        self._error = None

        with self._lock:
            self._engine = SessionEngine(
                self.config,
                self._prober_factory(),
                resolver=self._resolver,
                on_probe=self._on_probe,
                quiet=True,
            )

        self._thread = threading.Thread(target=self._run_thread, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 10) -> Optional[StatsSnapshot]:
        """Stop probing, wait for the final flush and return the session snapshot."""
        with self._lock:
            engine = self._engine
        if engine is not None:
            engine.request_stop()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._error is not None:
            raise self._error
        return self._result

    def wait_for_first_probe(self, timeout: float = 30) -> bool:
        """Wait until one probe has completed. Returns False on timeout."""
        ready = self._first_probe.wait(timeout=timeout)
        if self._error is not None:
            raise self._error
        return ready

    def wait(self, timeout: Optional[float] = None) -> Optional[StatsSnapshot]:
        """Wait for a bounded session to finish on its own. Returns the final snapshot."""
        self._finished.wait(timeout=timeout)
        if self._error is not None:
            raise self._error
        return self._result

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._finished.is_set()

    @property
    def address(self) -> Optional[str]:
        """Resolved target address, once known."""
        with self._lock:
            return self._engine.address if self._engine is not None else None

    def stats(self) -> Optional[StatsSnapshot]:
        """Session-wide statistics so far, or None before probing starts."""
        with self._lock:
            if self._engine is None:
                return None
            return self._engine.snapshot()

    # =========================================================================
    # Context manager
    # =========================================================================

    def __enter__(self) -> "PingMonitor":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # =========================================================================
    # Internal
    # =========================================================================

    def _on_probe(self, engine: SessionEngine, seq: int, latency_ms: Optional[float]):
        """Called by the engine after each probe."""
        if not self._first_probe.is_set():
            self._first_probe.set()

        if self._user_callback is not None:
            try:
                self._user_callback(self, seq, latency_ms)
            except Exception as e:
                print(f"on_probe callback error: {e}")

    def _run_thread(self):
        """Background thread entry point."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        try:
            self._result = loop.run_until_complete(self._engine.run())
        except PingstatError as e:
            self._error = e
        except Exception as e:
            self._error = PingstatError(f"Monitor error: {e}")
        finally:
            loop.close()
            self._first_probe.set()
            self._finished.set()
