from typing import Dict, List, Optional, Sequence

from trainstats.reports.schema import (
    GarbageCollectionStats,
    HardwareInfo,
    Histogram,
    MemoryStats,
    ModelInfo,
    PerformanceStats,
    SoftwareInfo,
    StatsInitializationReport,
    StatsReport,
)
from trainstats.settings import StatsType


class StatsReportBuilder:
    """
    Accumulates the sections of one update report.

    The builder is mutable and short-lived: the listener creates one per
    reporting iteration, calls the `report_*` methods that its configuration
    enables, then `build()` produces the immutable StatsReport handed to the
    router. Mappings are copied on the way in, so callers may reuse theirs.
    """

    def __init__(self, param_names: Optional[Sequence[str]] = None) -> None:
        self._param_names = tuple(param_names or ())
        self._ids: Optional[tuple] = None
        self._iteration = 0
        self._score: Optional[float] = None
        self._performance: Optional[PerformanceStats] = None
        self._memory: Optional[MemoryStats] = None
        self._gc: List[GarbageCollectionStats] = []
        self._learning_rates: Optional[Dict[str, float]] = None
        self._histograms: Dict[StatsType, Dict[str, Histogram]] = {}
        self._means: Dict[StatsType, Dict[str, float]] = {}
        self._stdevs: Dict[StatsType, Dict[str, float]] = {}
        self._mean_magnitudes: Dict[StatsType, Dict[str, float]] = {}
        self._duration_ms: Optional[int] = None

    def report_ids(
        self, session_id: str, type_id: str, worker_id: str, timestamp: int
    ) -> None:
        self._ids = (session_id, type_id, worker_id, int(timestamp))

    def report_iteration(self, iteration: int) -> None:
        self._iteration = int(iteration)

    def report_performance(
        self,
        total_runtime_ms: int,
        total_examples: int,
        total_minibatches: int,
        examples_per_second: float,
        minibatches_per_second: float,
    ) -> None:
        self._performance = PerformanceStats(
            total_runtime_ms=int(total_runtime_ms),
            total_examples=int(total_examples),
            total_minibatches=int(total_minibatches),
            examples_per_second=float(examples_per_second),
            minibatches_per_second=float(minibatches_per_second),
        )

    def report_memory(self, memory: MemoryStats) -> None:
        self._memory = memory

    def report_garbage_collection(self, stats: Sequence[GarbageCollectionStats]) -> None:
        self._gc.extend(stats)

    def report_score(self, score: Optional[float]) -> None:
        self._score = None if score is None else float(score)

    def report_learning_rates(self, learning_rates: Dict[str, float]) -> None:
        self._learning_rates = {k: float(v) for k, v in learning_rates.items()}

    def report_histograms(
        self, stats_type: StatsType, histograms: Dict[str, Histogram]
    ) -> None:
        self._histograms[StatsType(stats_type)] = dict(histograms)

    def report_mean(self, stats_type: StatsType, values: Dict[str, float]) -> None:
        self._means[StatsType(stats_type)] = dict(values)

    def report_stdev(self, stats_type: StatsType, values: Dict[str, float]) -> None:
        self._stdevs[StatsType(stats_type)] = dict(values)

    def report_mean_magnitudes(
        self, stats_type: StatsType, values: Dict[str, float]
    ) -> None:
        self._mean_magnitudes[StatsType(stats_type)] = dict(values)

    def report_stats_collection_duration_ms(self, duration_ms: int) -> None:
        self._duration_ms = max(int(duration_ms), 0)

    def build(self) -> StatsReport:
        if self._ids is None:
            raise ValueError("report_ids() must be called before build()")
        session_id, type_id, worker_id, timestamp = self._ids
        return StatsReport(
            session_id=session_id,
            type_id=type_id,
            worker_id=worker_id,
            timestamp=timestamp,
            iteration=self._iteration,
            param_names=self._param_names,
            score=self._score,
            performance=self._performance,
            memory=self._memory,
            garbage_collection=tuple(self._gc),
            learning_rates=self._learning_rates,
            histograms=dict(self._histograms),
            means=dict(self._means),
            stdevs=dict(self._stdevs),
            mean_magnitudes=dict(self._mean_magnitudes),
            stats_collection_duration_ms=self._duration_ms,
        )


class StatsInitializationReportBuilder:
    """Accumulates the one-time initialization report."""

    def __init__(self) -> None:
        self._ids: Optional[tuple] = None
        self._software: Optional[SoftwareInfo] = None
        self._hardware: Optional[HardwareInfo] = None
        self._model: Optional[ModelInfo] = None

    def report_ids(
        self, session_id: str, type_id: str, worker_id: str, timestamp: int
    ) -> None:
        self._ids = (session_id, type_id, worker_id, int(timestamp))

    def report_software_info(self, info: SoftwareInfo) -> None:
        self._software = info

    def report_hardware_info(self, info: HardwareInfo) -> None:
        self._hardware = info

    def report_model_info(self, info: ModelInfo) -> None:
        self._model = info

    def build(self) -> StatsInitializationReport:
        if self._ids is None:
            raise ValueError("report_ids() must be called before build()")
        session_id, type_id, worker_id, timestamp = self._ids
        return StatsInitializationReport(
            session_id=session_id,
            type_id=type_id,
            worker_id=worker_id,
            timestamp=timestamp,
            software=self._software,
            hardware=self._hardware,
            model=self._model,
        )
