import psutil
import torch
import os
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
from pynvml import (
    nvmlInit,
    nvmlDeviceGetCount,
    nvmlDeviceGetHandleByIndex,
    nvmlDeviceGetMemoryInfo,
    nvmlDeviceGetName,
    NVMLError,
)

from trainstats.loggers.error_log import get_error_logger
from trainstats.reports.schema import HardwareInfo, MemoryStats
from trainstats.samplers.gc_monitor import GCMonitor, get_gc_monitor
from trainstats.session import get_hardware_uid
from trainstats.stats.tracker import GCSnapshot


class SystemMetricsProvider(ABC):
    """
    Source of process-wide runtime metrics for the StatsListener.

    The listener only reads snapshots through this interface, so tests can
    substitute a deterministic fake for the real environment.
    """

    @abstractmethod
    def memory(self) -> MemoryStats:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def gc_stats(self) -> Dict[str, GCSnapshot]:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def hardware_info(self) -> HardwareInfo:
        raise NotImplementedError("Must be implemented by subclasses.")


class RuntimeMetricsProvider(SystemMetricsProvider):
    """
    SystemMetricsProvider backed by psutil, torch.cuda and NVML.

    Every probe is best-effort: a failing probe is logged and yields zeros,
    never an exception into the training loop.
    """

    def __init__(self, gc_monitor: Optional[GCMonitor] = None) -> None:
        self.logger = get_error_logger("RuntimeMetricsProvider")
        self.gc_monitor = gc_monitor or get_gc_monitor()

        self._init_process()
        self._init_ram()
        self._init_gpu()
        self._init_nvml()

    def _init_process(self) -> None:
        """Attach to the current process."""
        try:
            self.pid = os.getpid()
            self.process = psutil.Process(self.pid)
        except Exception as e:
            self.logger.error(
                f"[TrainStats] WARNING: Failed to attach to process {os.getpid()}: {e}"
            )
            self.pid = None
            self.process = None

    def _init_ram(self) -> None:
        self.ram_total = 0.0
        try:
            self.ram_total = float(psutil.virtual_memory().total)
        except Exception as e:
            self.logger.error(
                f"[TrainStats] WARNING: psutil.virtual_memory initial call failed: {e}"
            )

    def _init_gpu(self) -> None:
        self.gpu_available = False
        self.gpu_count = 0
        try:
            if torch.cuda.is_available():
                self.gpu_count = torch.cuda.device_count()
                self.gpu_available = self.gpu_count > 0
        except Exception as e:
            self.logger.error(f"[TrainStats] WARNING: torch.cuda probe failed: {e}")

    def _init_nvml(self) -> None:
        self.nvml_available = False
        self.nvml_count = 0
        try:
            nvmlInit()
            self.nvml_count = nvmlDeviceGetCount()
            self.nvml_available = self.nvml_count > 0
        except NVMLError as e:
            self.logger.warning(f"[TrainStats] NVML not available: {e}")

    # ------------------------------------------------------------------
    # memory
    # ------------------------------------------------------------------

    def _sample_ram(self) -> float:
        if self.process is None:
            return 0.0
        try:
            return float(self.process.memory_info().rss)
        except Exception as e:
            self.logger.error(
                f"[TrainStats] WARNING: Failed to sample process RAM usage: {e}"
            )
            return 0.0

    def _sample_gpu(self) -> Tuple[List[float], List[float]]:
        """
        Return per-device (used, total) bytes.

        Same device list as `hardware_info`: NVML when it is available,
        torch.cuda otherwise.
        """
        used: List[float] = []
        total: List[float] = []
        if self.nvml_available:
            for i in range(self.nvml_count):
                try:
                    mem = nvmlDeviceGetMemoryInfo(nvmlDeviceGetHandleByIndex(i))
                    used.append(float(mem.used))
                    total.append(float(mem.total))
                except Exception as e:
                    self.logger.error(f"[TrainStats] GPU {i} NVML memory read failed: {e}")
                    used.append(0.0)
                    total.append(0.0)
            return used, total

        for i in range(self.gpu_count):
            try:
                used.append(float(torch.cuda.memory_allocated(i)))
                total.append(float(torch.cuda.get_device_properties(i).total_memory))
            except Exception as e:
                self.logger.error(f"[TrainStats] GPU {i} memory read failed: {e}")
                used.append(0.0)
                total.append(0.0)
        return used, total

    def memory(self) -> MemoryStats:
        device_used, device_max = self._sample_gpu()
        return MemoryStats(
            host_used=self._sample_ram(),
            host_max=self.ram_total,
            device_used=tuple(device_used),
            device_max=tuple(device_max),
        )

    # ------------------------------------------------------------------
    # garbage collection
    # ------------------------------------------------------------------

    def gc_stats(self) -> Dict[str, GCSnapshot]:
        return self.gc_monitor.snapshot()

    # ------------------------------------------------------------------
    # hardware
    # ------------------------------------------------------------------

    def _nvml_devices(self) -> Tuple[List[float], List[str]]:
        totals: List[float] = []
        names: List[str] = []
        for i in range(self.nvml_count):
            try:
                handle = nvmlDeviceGetHandleByIndex(i)
                mem = nvmlDeviceGetMemoryInfo(handle)
                name = nvmlDeviceGetName(handle)
                if isinstance(name, bytes):
                    name = name.decode("utf-8", errors="replace")
                totals.append(float(mem.total))
                names.append(str(name))
            except Exception as e:
                self.logger.error(f"[TrainStats] GPU {i} NVML query failed: {e}")
                totals.append(0.0)
                names.append("")
        return totals, names

    def _torch_devices(self) -> Tuple[List[float], List[str]]:
        totals: List[float] = []
        names: List[str] = []
        for i in range(self.gpu_count):
            try:
                props = torch.cuda.get_device_properties(i)
                totals.append(float(props.total_memory))
                names.append(str(props.name))
            except Exception as e:
                self.logger.error(f"[TrainStats] GPU {i} properties read failed: {e}")
                totals.append(0.0)
                names.append("")
        return totals, names

    def hardware_info(self) -> HardwareInfo:
        try:
            cpu_count = psutil.cpu_count(logical=True) or 0
        except Exception as e:
            self.logger.error(f"[TrainStats] WARNING: psutil.cpu_count failed: {e}")
            cpu_count = 0

        if self.nvml_available:
            totals, names = self._nvml_devices()
        else:
            totals, names = self._torch_devices()

        return HardwareInfo(
            cpu_count=int(cpu_count),
            device_count=len(totals),
            host_memory_max=self.ram_total,
            device_memory_max=float(sum(totals)),
            device_total_memory=tuple(totals),
            device_descriptions=tuple(names),
            hardware_uid=get_hardware_uid(),
        )
