import gc
import threading
import time
from typing import Dict

from trainstats.stats.tracker import GCSnapshot


class GCMonitor:
    """
    Process-wide garbage-collection accounting.

    Python exposes cumulative collection counts per generation through
    `gc.get_stats()` but no collection time. The monitor installs a
    `gc.callbacks` hook that accumulates wall-clock time per generation.
    Collections that ran before `install()` are counted but carry no time.

    Sources are named "gen0", "gen1", "gen2" (one per generation the
    interpreter reports).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._installed = False
        self._started: Dict[int, float] = {}
        self._time_ms: Dict[int, float] = {}

    def _callback(self, phase: str, info: Dict) -> None:
        generation = info.get("generation", -1)
        if phase == "start":
            self._started[generation] = time.perf_counter()
        elif phase == "stop":
            started = self._started.pop(generation, None)
            if started is not None:
                elapsed_ms = (time.perf_counter() - started) * 1000.0
                self._time_ms[generation] = self._time_ms.get(generation, 0.0) + elapsed_ms

    def install(self) -> "GCMonitor":
        with self._lock:
            if not self._installed:
                gc.callbacks.append(self._callback)
                self._installed = True
        return self

    def uninstall(self) -> None:
        with self._lock:
            if self._installed:
                try:
                    gc.callbacks.remove(self._callback)
                except ValueError:
                    pass
                self._installed = False

    def snapshot(self) -> Dict[str, GCSnapshot]:
        """Cumulative (count, time_ms) per generation."""
        out: Dict[str, GCSnapshot] = {}
        for generation, stats in enumerate(gc.get_stats()):
            out[f"gen{generation}"] = GCSnapshot(
                count=int(stats.get("collections", 0)),
                time_ms=float(self._time_ms.get(generation, 0.0)),
            )
        return out


_GC_MONITOR = None


def get_gc_monitor() -> GCMonitor:
    """Shared, installed monitor for this process."""
    global _GC_MONITOR
    if _GC_MONITOR is None:
        _GC_MONITOR = GCMonitor().install()
    return _GC_MONITOR
