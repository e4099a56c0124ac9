"""
StatsListener: per-iteration training telemetry collector.

The listener is called synchronously from the training loop through
`on_iteration(model, iteration)`. It owns all of its mutable state and:

- On the first call, routes a storage-metadata record and a one-time
  initialization report (software / hardware / model info).
- On calls selected by the reporting cadence, builds an update report
  (performance, memory, GC deltas, score, learning rates, histograms and
  summary statistics per category) and routes it.
- On every other call, only updates its counters and returns.

Failure behavior
----------------
Router failures are logged and ignored by default (rate-limited warnings);
with RouterErrorPolicy.FAIL they are raised as RouterFailure. Unsupported
model topologies always propagate.

Threading
---------
One listener per worker thread. Calls to `on_iteration` on the same instance
must not overlap. The router may be shared.
"""

import time
import uuid
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import torch

from trainstats.errors import RouterFailure, UnsupportedModelTopology
from trainstats.loggers.error_log import get_error_logger, setup_error_logger
from trainstats.models.base import ModelView, Topology
from trainstats.reports.builder import (
    StatsInitializationReportBuilder,
    StatsReportBuilder,
)
from trainstats.reports.schema import ModelInfo, StorageMetaData
from trainstats.routers.base import StatsStorageRouter
from trainstats.samplers.environment import EnvironmentInfo
from trainstats.samplers.system_metrics import (
    RuntimeMetricsProvider,
    SystemMetricsProvider,
)
from trainstats.session import generate_worker_id
from trainstats.settings import (
    ListenerSettings,
    RouterErrorPolicy,
    StatsInitConfig,
    StatsType,
    StatsUpdateConfig,
)
from trainstats.stats.summary import SummaryStat, histogram, summarize
from trainstats.stats.tracker import (
    EMPTY_WINDOW,
    GCSnapshot,
    ReportingWindow,
    compute_rates,
    gc_deltas,
)

TYPE_ID = "StatsListener"


class ListenerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED_NO_REPORT = "initialized_no_report"
    INITIALIZED_REPORTING = "initialized_reporting"


def _current_time_ms() -> int:
    return int(time.time() * 1000)


class StatsListener:
    """
    Collects system and model statistics and hands them to a router.

    Parameters
    ----------
    router : StatsStorageRouter
        Receives metadata, the initialization report and update reports.
    init_config : StatsInitConfig, optional
        One-time sections to collect. Defaults to everything.
    update_config : StatsUpdateConfig, optional
        Update report contents and cadence.
    session_id, worker_id : str, optional
        Identity of this listener. Generated when omitted.
    settings : ListenerSettings, optional
        Router error policy and hostname timeout.
    metrics_provider : SystemMetricsProvider, optional
        Memory, GC and hardware source. Defaults to RuntimeMetricsProvider,
        created lazily on first use.
    environment : EnvironmentInfo, optional
        Software info source.
    clock : Callable[[], int], optional
        Current time in milliseconds.
    """

    def __init__(
        self,
        router: StatsStorageRouter,
        init_config: Optional[StatsInitConfig] = None,
        update_config: Optional[StatsUpdateConfig] = None,
        session_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        settings: Optional[ListenerSettings] = None,
        metrics_provider: Optional[SystemMetricsProvider] = None,
        environment: Optional[EnvironmentInfo] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if router is None:
            raise ValueError("router is required")
        self.router = router
        self.init_config = init_config or StatsInitConfig()
        self.update_config = update_config or StatsUpdateConfig()
        self.settings = settings or ListenerSettings()

        self._session_id = session_id or str(uuid.uuid4())
        self._worker_id = worker_id or generate_worker_id()

        self._metrics_provider = metrics_provider
        self._environment = environment or EnvironmentInfo(
            hostname_timeout_sec=self.settings.hostname_timeout_sec
        )
        self._clock = clock or _current_time_ms

        setup_error_logger(self._session_id)
        self._logger = get_error_logger("StatsListener")

        self._initialized = False
        self._iteration_count = 0
        self._init_time_ms = -1
        self._last_report_time_ms = -1
        self._last_report_iteration = -1
        self._window: ReportingWindow = EMPTY_WINDOW
        self._total_examples = 0
        self._total_minibatches = 0
        self._param_names: Tuple[str, ...] = ()
        self._gc_stats_at_last_report: Optional[Dict[str, GCSnapshot]] = None
        self._router_errors = 0

    # ------------------------------------------------------------------
    # read-only state
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def type_id(self) -> str:
        return TYPE_ID

    @property
    def iteration_count(self) -> int:
        return self._iteration_count

    @property
    def total_examples(self) -> int:
        return self._total_examples

    @property
    def total_minibatches(self) -> int:
        return self._total_minibatches

    @property
    def window(self) -> ReportingWindow:
        return self._window

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self._param_names

    @property
    def last_report_iteration(self) -> int:
        return self._last_report_iteration

    @property
    def last_report_time_ms(self) -> int:
        return self._last_report_time_ms

    @property
    def state(self) -> ListenerState:
        if not self._initialized:
            return ListenerState.UNINITIALIZED
        if self._last_report_iteration < 0:
            return ListenerState.INITIALIZED_NO_REPORT
        return ListenerState.INITIALIZED_REPORTING

    def invoked(self) -> bool:
        return self._iteration_count > 0

    @property
    def metrics_provider(self) -> SystemMetricsProvider:
        if self._metrics_provider is None:
            self._metrics_provider = RuntimeMetricsProvider()
        return self._metrics_provider

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    def is_report_iteration(self, iteration_count: int) -> bool:
        freq = self.update_config.reporting_frequency
        return freq == 1 or iteration_count == 0 or iteration_count % freq == 0

    def on_iteration(self, model: ModelView, iteration: int) -> None:
        """
        Process one training iteration.

        `iteration` is the caller's own iteration index; cadence is driven by
        the listener's internal call count.
        """
        try:
            current_time = self._clock()
            if not self._initialized:
                self._init_time_ms = current_time
                self._do_init(model)

            if self.update_config.collect_performance_stats:
                self._update_counts(model)

            if not self.is_report_iteration(self._iteration_count):
                return

            self._do_report(model, iteration, current_time)
        finally:
            self._iteration_count += 1

    # ------------------------------------------------------------------
    # counters
    # ------------------------------------------------------------------

    def _update_counts(self, model: ModelView) -> None:
        batch_size = model.batch_size or 0
        self._window = self._window.add(batch_size)
        self._total_examples += max(int(batch_size), 0)
        self._total_minibatches += 1

    # ------------------------------------------------------------------
    # initialization
    # ------------------------------------------------------------------

    def _check_model(self, model: ModelView) -> None:
        if not isinstance(model, ModelView) or getattr(model, "topology", None) not in (
            Topology.SEQUENTIAL,
            Topology.GRAPH,
        ):
            raise UnsupportedModelTopology(
                f"Unsupported model type: {type(model).__name__}; "
                f"wrap the module in SequentialModel or GraphModel"
            )

    def _do_init(self, model: ModelView) -> None:
        self._check_model(model)

        init_time = self._init_time_ms
        builder = StatsInitializationReportBuilder()
        builder.report_ids(self._session_id, TYPE_ID, self._worker_id, init_time)

        if self.init_config.collect_software_info:
            builder.report_software_info(self._environment.software_info())

        if self.init_config.collect_hardware_info:
            builder.report_hardware_info(self.metrics_provider.hardware_info())

        self._param_names = tuple(model.param_names())

        if self.init_config.collect_model_info:
            builder.report_model_info(
                ModelInfo(
                    model_class_name=model.class_name,
                    model_config=model.serialized_config(),
                    param_names=self._param_names,
                    num_layers=model.num_layers,
                    num_params=model.num_params,
                )
            )

        meta = StorageMetaData(
            timestamp=init_time,
            session_id=self._session_id,
            type_id=TYPE_ID,
            worker_id=self._worker_id,
        )

        # set before routing so a router failure cannot re-run init
        self._initialized = True
        self._route("storage metadata", self.router.put_storage_metadata, meta)
        self._route("initialization report", self.router.put_static_info, builder.build())

    # ------------------------------------------------------------------
    # update report
    # ------------------------------------------------------------------

    def _do_report(self, model: ModelView, iteration: int, current_time: int) -> None:
        config = self.update_config
        report = StatsReportBuilder(self._param_names)
        report.report_ids(self._session_id, TYPE_ID, self._worker_id, current_time)
        report.report_iteration(iteration)

        # --- Performance ---
        if config.collect_performance_stats:
            rates = compute_rates(self._window, self._last_report_time_ms, current_time)
            report.report_performance(
                total_runtime_ms=current_time - self._init_time_ms,
                total_examples=self._total_examples,
                total_minibatches=self._total_minibatches,
                examples_per_second=rates.examples_per_second,
                minibatches_per_second=rates.minibatches_per_second,
            )

        # --- Memory ---
        if config.collect_memory_stats:
            report.report_memory(self.metrics_provider.memory())

        # --- Garbage collection ---
        gc_snapshot = None
        if config.collect_garbage_collection_stats:
            deltas, gc_snapshot = gc_deltas(
                self._gc_stats_at_last_report, self.metrics_provider.gc_stats()
            )
            report.report_garbage_collection(deltas)

        # --- General ---
        report.report_score(model.score)

        if config.collect_learning_rates:
            lrs = model.learning_rates()
            if lrs is not None:
                report.report_learning_rates(lrs)

        # --- Histograms and summary statistics ---
        with torch.no_grad():
            self._collect_arrays(model, report)

        # window and GC baseline only move once the whole report was collected
        if config.collect_performance_stats:
            self._window = EMPTY_WINDOW
        if gc_snapshot is not None:
            self._gc_stats_at_last_report = gc_snapshot

        end_time = self._clock()
        report.report_stats_collection_duration_ms(end_time - current_time)
        self._last_report_time_ms = current_time
        self._last_report_iteration = self._iteration_count

        self._route("update report", self.router.put_update, report.build())

    def _collect_arrays(self, model: ModelView, report: StatsReportBuilder) -> None:
        config = self.update_config
        sources = {
            StatsType.PARAMETERS: model.named_parameters,
            StatsType.UPDATES: model.named_gradients,
            StatsType.ACTIVATIONS: model.named_activations,
        }
        for stats_type, source in sources.items():
            wanted = (
                config.collect_histograms(stats_type),
                config.collect_mean(stats_type),
                config.collect_stdev(stats_type),
                config.collect_mean_magnitudes(stats_type),
            )
            if not any(wanted):
                continue

            arrays = source()
            want_hist, want_mean, want_stdev, want_mag = wanted
            if want_hist:
                report.report_histograms(
                    stats_type, histogram(arrays, config.num_histogram_bins(stats_type))
                )
            if want_mean:
                report.report_mean(stats_type, summarize(arrays, SummaryStat.MEAN))
            if want_stdev:
                report.report_stdev(stats_type, summarize(arrays, SummaryStat.STDEV))
            if want_mag:
                report.report_mean_magnitudes(
                    stats_type, summarize(arrays, SummaryStat.MEAN_MAGNITUDE)
                )

    # ------------------------------------------------------------------
    # routing
    # ------------------------------------------------------------------

    def _route(self, label: str, put: Callable, record) -> None:
        """Hand `record` to the router, applying the router error policy."""
        try:
            put(record)
        except Exception as e:
            if self.settings.router_error_policy is RouterErrorPolicy.FAIL:
                raise RouterFailure(f"Router failed on {label}: {e}") from e

            max_messages = self.settings.max_error_messages
            self._router_errors += 1
            if self._router_errors <= max_messages:
                self._logger.warning(
                    f"[TrainStats] Exception thrown by router when posting {label}: {e}"
                )
            if self._router_errors == max_messages:
                self._logger.warning(
                    f"[TrainStats] Max error messages ({max_messages}) logged; "
                    f"printing no more messages"
                )
