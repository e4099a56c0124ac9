"""
Rate / delta bookkeeping between two reports.

Everything here is a pure transition on values owned by the listener:

- ReportingWindow : examples and minibatches seen since the last report.
                    Replaced by a fresh EMPTY_WINDOW at every report.
- compute_rates   : per-second throughput over the window.
- gc_deltas       : per-source garbage-collection deltas between two snapshots.

Invariants
----------
- Counts and deltas are never negative.
- No rate is ever computed from an undefined or zero-length time window.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from trainstats.reports.schema import GarbageCollectionStats


@dataclass(frozen=True)
class ReportingWindow:
    examples: int = 0
    minibatches: int = 0

    def add(self, batch_size: Optional[int]) -> "ReportingWindow":
        """Account one minibatch of `batch_size` examples (None counts as 0)."""
        n = max(int(batch_size or 0), 0)
        return ReportingWindow(
            examples=self.examples + n, minibatches=self.minibatches + 1
        )


EMPTY_WINDOW = ReportingWindow()


@dataclass(frozen=True)
class Rates:
    examples_per_second: float = 0.0
    minibatches_per_second: float = 0.0


def compute_rates(
    window: ReportingWindow,
    last_report_time_ms: int,
    current_time_ms: int,
) -> Rates:
    """
    Throughput over the reporting window.

    Returns zero rates when there is no previous report
    (`last_report_time_ms < 0`) or the window has no positive length.
    """
    if last_report_time_ms < 0:
        return Rates()
    elapsed_ms = current_time_ms - last_report_time_ms
    if elapsed_ms <= 0:
        return Rates()
    return Rates(
        examples_per_second=1000.0 * window.examples / elapsed_ms,
        minibatches_per_second=1000.0 * window.minibatches / elapsed_ms,
    )


@dataclass(frozen=True)
class GCSnapshot:
    """Cumulative collection count and time (ms) for one GC source."""

    count: int
    time_ms: float


def gc_deltas(
    previous: Optional[Mapping[str, GCSnapshot]],
    current: Mapping[str, GCSnapshot],
) -> Tuple[List[GarbageCollectionStats], Dict[str, GCSnapshot]]:
    """
    Compute per-source GC deltas and the snapshot to keep for next time.

    - `previous is None` means no baseline yet: nothing is reported and
      `current` becomes the baseline.
    - A source missing from `previous` has no prior data; it is added to the
      new snapshot and not reported this time.
    - Sources missing from `current` are dropped.
    - A counter that went backwards reports 0 instead of a negative delta.
    """
    snapshot = dict(current)
    if previous is None:
        return [], snapshot

    deltas: List[GarbageCollectionStats] = []
    for name, now in current.items():
        before = previous.get(name)
        if before is None:
            continue
        deltas.append(
            GarbageCollectionStats(
                name=name,
                delta_count=max(now.count - before.count, 0),
                delta_time_ms=max(now.time_ms - before.time_ms, 0.0),
            )
        )
    return deltas, snapshot
