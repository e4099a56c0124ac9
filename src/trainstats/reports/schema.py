"""
Report schema for trainstats.

This module defines the canonical data structures handed to a router:

- StorageMetaData           : once per listener, describes the report shapes
- StatsInitializationReport : once per listener, static software/hardware/model info
- StatsReport               : one per reporting iteration

Design principles
-----------------
- Explicit, self-documenting schema via frozen dataclasses
- Clear separation between:
    * internal representation (dataclasses)
    * wire representation (plain dicts / lists, msgpack friendly)
- Cheap, explicit conversions (no reflection)
- Optional sections are `None` (or empty) when not collected
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from trainstats.settings import StatsType

HISTOGRAM_ROUNDING = 6

# ---------------------------------------------------------------------------
# Histogram
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Histogram:
    """
    Fixed-bin histogram of one named array.

    `counts` has exactly `num_bins` entries. Bins are equal width over
    [min, max]; every bin is half-open except the last, which is closed.
    """

    min: float
    max: float
    num_bins: int
    counts: Tuple[int, ...]

    def bin_edges(self) -> List[float]:
        """Return the `num_bins + 1` bin edges, rounded for display."""
        width = (self.max - self.min) / self.num_bins
        return [
            round(self.min + i * width, HISTOGRAM_ROUNDING)
            for i in range(self.num_bins)
        ] + [round(self.max, HISTOGRAM_ROUNDING)]

    @property
    def total(self) -> int:
        return int(sum(self.counts))

    def to_wire(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "bins": self.num_bins,
            "counts": list(self.counts),
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "Histogram":
        return Histogram(
            min=float(data["min"]),
            max=float(data["max"]),
            num_bins=int(data["bins"]),
            counts=tuple(int(c) for c in data["counts"]),
        )


# ---------------------------------------------------------------------------
# Update report blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PerformanceStats:
    """
    Throughput since the previous report.

    Units
    -----
    total_runtime_ms       : milliseconds since the first iteration
    examples_per_second    : examples / s over the last reporting window
    minibatches_per_second : minibatches / s over the last reporting window
    """

    total_runtime_ms: int
    total_examples: int
    total_minibatches: int
    examples_per_second: float
    minibatches_per_second: float

    def to_wire(self) -> Dict[str, Any]:
        return {
            "runtime_ms": self.total_runtime_ms,
            "examples": self.total_examples,
            "minibatches": self.total_minibatches,
            "examples_ps": self.examples_per_second,
            "minibatches_ps": self.minibatches_per_second,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "PerformanceStats":
        return PerformanceStats(
            total_runtime_ms=int(data["runtime_ms"]),
            total_examples=int(data["examples"]),
            total_minibatches=int(data["minibatches"]),
            examples_per_second=float(data["examples_ps"]),
            minibatches_per_second=float(data["minibatches_ps"]),
        )


@dataclass(frozen=True)
class MemoryStats:
    """
    Point-in-time memory use.

    Units
    -----
    host_used, host_max : bytes (process RSS, total physical memory)
    device_used, device_max : bytes, one entry per accelerator (index = device id)
    """

    host_used: float
    host_max: float
    device_used: Tuple[float, ...] = ()
    device_max: Tuple[float, ...] = ()

    def to_wire(self) -> Dict[str, Any]:
        return {
            "host_used": self.host_used,
            "host_max": self.host_max,
            "device_used": list(self.device_used),
            "device_max": list(self.device_max),
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "MemoryStats":
        return MemoryStats(
            host_used=float(data["host_used"]),
            host_max=float(data["host_max"]),
            device_used=tuple(data.get("device_used", ())),
            device_max=tuple(data.get("device_max", ())),
        )


@dataclass(frozen=True)
class GarbageCollectionStats:
    """Collections and collection time for one GC source since the previous report."""

    name: str
    delta_count: int
    delta_time_ms: float

    def to_wire(self) -> List[Any]:
        return [self.name, self.delta_count, self.delta_time_ms]

    @staticmethod
    def from_wire(data: List[Any]) -> "GarbageCollectionStats":
        return GarbageCollectionStats(
            name=str(data[0]), delta_count=int(data[1]), delta_time_ms=float(data[2])
        )


def _typed_to_wire(mapping: Dict[StatsType, Dict[str, Any]], convert=None):
    out = {}
    for stats_type, values in mapping.items():
        if convert is None:
            out[stats_type.value] = dict(values)
        else:
            out[stats_type.value] = {k: convert(v) for k, v in values.items()}
    return out


def _typed_from_wire(data: Dict[str, Dict[str, Any]], convert=None):
    out = {}
    for key, values in (data or {}).items():
        if convert is None:
            out[StatsType(key)] = dict(values)
        else:
            out[StatsType(key)] = {k: convert(v) for k, v in values.items()}
    return out


# ---------------------------------------------------------------------------
# Update report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatsReport:
    """
    One update report.

    Notes
    -----
    - `param_names` is the parameter order captured at initialization; it is
      the stable row layout for every report of one listener.
    - Per-category mappings only contain the categories that were collected.
    """

    session_id: str
    type_id: str
    worker_id: str
    timestamp: int
    iteration: int
    param_names: Tuple[str, ...] = ()
    score: Optional[float] = None
    performance: Optional[PerformanceStats] = None
    memory: Optional[MemoryStats] = None
    garbage_collection: Tuple[GarbageCollectionStats, ...] = ()
    learning_rates: Optional[Dict[str, float]] = None
    histograms: Dict[StatsType, Dict[str, Histogram]] = field(default_factory=dict)
    means: Dict[StatsType, Dict[str, float]] = field(default_factory=dict)
    stdevs: Dict[StatsType, Dict[str, float]] = field(default_factory=dict)
    mean_magnitudes: Dict[StatsType, Dict[str, float]] = field(default_factory=dict)
    stats_collection_duration_ms: Optional[int] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "session": self.session_id,
            "type": self.type_id,
            "worker": self.worker_id,
            "ts": self.timestamp,
            "iter": self.iteration,
            "params": list(self.param_names),
            "score": self.score,
            "perf": self.performance.to_wire() if self.performance else None,
            "mem": self.memory.to_wire() if self.memory else None,
            "gc": [g.to_wire() for g in self.garbage_collection],
            "lr": dict(self.learning_rates) if self.learning_rates is not None else None,
            "hist": _typed_to_wire(self.histograms, lambda h: h.to_wire()),
            "mean": _typed_to_wire(self.means),
            "stdev": _typed_to_wire(self.stdevs),
            "mean_mag": _typed_to_wire(self.mean_magnitudes),
            "duration_ms": self.stats_collection_duration_ms,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "StatsReport":
        perf = data.get("perf")
        mem = data.get("mem")
        lr = data.get("lr")
        return StatsReport(
            session_id=data["session"],
            type_id=data["type"],
            worker_id=data["worker"],
            timestamp=int(data["ts"]),
            iteration=int(data["iter"]),
            param_names=tuple(data.get("params", ())),
            score=data.get("score"),
            performance=PerformanceStats.from_wire(perf) if perf else None,
            memory=MemoryStats.from_wire(mem) if mem else None,
            garbage_collection=tuple(
                GarbageCollectionStats.from_wire(g) for g in data.get("gc", [])
            ),
            learning_rates=dict(lr) if lr is not None else None,
            histograms=_typed_from_wire(data.get("hist"), Histogram.from_wire),
            means=_typed_from_wire(data.get("mean")),
            stdevs=_typed_from_wire(data.get("stdev")),
            mean_magnitudes=_typed_from_wire(data.get("mean_mag")),
            stats_collection_duration_ms=data.get("duration_ms"),
        )


# ---------------------------------------------------------------------------
# Initialization report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SoftwareInfo:
    arch: str
    os_name: str
    runtime_name: str
    runtime_version: str
    runtime_spec_version: str
    backend: str
    dtype: str
    hostname: Optional[str]
    process_uid: str

    def to_wire(self) -> Dict[str, Any]:
        return {
            "arch": self.arch,
            "os": self.os_name,
            "runtime": self.runtime_name,
            "runtime_version": self.runtime_version,
            "runtime_spec": self.runtime_spec_version,
            "backend": self.backend,
            "dtype": self.dtype,
            "hostname": self.hostname,
            "process_uid": self.process_uid,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "SoftwareInfo":
        return SoftwareInfo(
            arch=data["arch"],
            os_name=data["os"],
            runtime_name=data["runtime"],
            runtime_version=data["runtime_version"],
            runtime_spec_version=data["runtime_spec"],
            backend=data["backend"],
            dtype=data["dtype"],
            hostname=data.get("hostname"),
            process_uid=data["process_uid"],
        )


@dataclass(frozen=True)
class HardwareInfo:
    """
    Static hardware description.

    Units
    -----
    host_memory_max, device_memory_max, device_total_memory : bytes
    `device_total_memory` and `device_descriptions` are parallel, one entry
    per accelerator.
    """

    cpu_count: int
    device_count: int
    host_memory_max: float
    device_memory_max: float
    device_total_memory: Tuple[float, ...]
    device_descriptions: Tuple[str, ...]
    hardware_uid: str

    def to_wire(self) -> Dict[str, Any]:
        return {
            "cpus": self.cpu_count,
            "devices": self.device_count,
            "host_mem_max": self.host_memory_max,
            "device_mem_max": self.device_memory_max,
            "device_mem": list(self.device_total_memory),
            "device_desc": list(self.device_descriptions),
            "hardware_uid": self.hardware_uid,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "HardwareInfo":
        return HardwareInfo(
            cpu_count=int(data["cpus"]),
            device_count=int(data["devices"]),
            host_memory_max=float(data["host_mem_max"]),
            device_memory_max=float(data["device_mem_max"]),
            device_total_memory=tuple(data.get("device_mem", ())),
            device_descriptions=tuple(data.get("device_desc", ())),
            hardware_uid=data["hardware_uid"],
        )


@dataclass(frozen=True)
class ModelInfo:
    model_class_name: str
    model_config: Dict[str, Any]
    param_names: Tuple[str, ...]
    num_layers: int
    num_params: int

    def to_wire(self) -> Dict[str, Any]:
        return {
            "class": self.model_class_name,
            "config": self.model_config,
            "params": list(self.param_names),
            "layers": self.num_layers,
            "num_params": self.num_params,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "ModelInfo":
        return ModelInfo(
            model_class_name=data["class"],
            model_config=data["config"],
            param_names=tuple(data.get("params", ())),
            num_layers=int(data["layers"]),
            num_params=int(data["num_params"]),
        )


@dataclass(frozen=True)
class StatsInitializationReport:
    session_id: str
    type_id: str
    worker_id: str
    timestamp: int
    software: Optional[SoftwareInfo] = None
    hardware: Optional[HardwareInfo] = None
    model: Optional[ModelInfo] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "session": self.session_id,
            "type": self.type_id,
            "worker": self.worker_id,
            "ts": self.timestamp,
            "software": self.software.to_wire() if self.software else None,
            "hardware": self.hardware.to_wire() if self.hardware else None,
            "model": self.model.to_wire() if self.model else None,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "StatsInitializationReport":
        sw, hw, model = data.get("software"), data.get("hardware"), data.get("model")
        return StatsInitializationReport(
            session_id=data["session"],
            type_id=data["type"],
            worker_id=data["worker"],
            timestamp=int(data["ts"]),
            software=SoftwareInfo.from_wire(sw) if sw else None,
            hardware=HardwareInfo.from_wire(hw) if hw else None,
            model=ModelInfo.from_wire(model) if model else None,
        )


# ---------------------------------------------------------------------------
# Storage metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StorageMetaData:
    """Identity triple plus the report classes this producer emits."""

    timestamp: int
    session_id: str
    type_id: str
    worker_id: str
    init_report_class: str = StatsInitializationReport.__name__
    update_report_class: str = StatsReport.__name__

    def to_wire(self) -> Dict[str, Any]:
        return {
            "ts": self.timestamp,
            "session": self.session_id,
            "type": self.type_id,
            "worker": self.worker_id,
            "init_class": self.init_report_class,
            "update_class": self.update_report_class,
        }

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> "StorageMetaData":
        return StorageMetaData(
            timestamp=int(data["ts"]),
            session_id=data["session"],
            type_id=data["type"],
            worker_id=data["worker"],
            init_report_class=data["init_class"],
            update_report_class=data["update_class"],
        )
