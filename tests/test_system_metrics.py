import gc
from unittest.mock import patch

from pynvml import NVML_ERROR_LIBRARY_NOT_FOUND, NVMLError

from trainstats.reports.schema import HardwareInfo, MemoryStats
from trainstats.samplers.gc_monitor import GCMonitor
from trainstats.samplers.system_metrics import RuntimeMetricsProvider
from trainstats.stats.tracker import GCSnapshot


def _nvml_error():
    return NVMLError(NVML_ERROR_LIBRARY_NOT_FOUND)


def test_gc_monitor_counts_and_times_collections():
    monitor = GCMonitor().install()
    try:
        before = monitor.snapshot()
        gc.collect()
        after = monitor.snapshot()
    finally:
        monitor.uninstall()

    assert set(before) == {f"gen{i}" for i in range(len(gc.get_stats()))}
    assert all(isinstance(v, GCSnapshot) for v in after.values())
    oldest = f"gen{len(gc.get_stats()) - 1}"
    assert after[oldest].count >= before[oldest].count + 1
    assert after[oldest].time_ms >= before[oldest].time_ms


def test_gc_monitor_install_is_idempotent():
    monitor = GCMonitor()
    monitor.install()
    monitor.install()
    try:
        assert gc.callbacks.count(monitor._callback) == 1
    finally:
        monitor.uninstall()
    assert monitor._callback not in gc.callbacks


def test_runtime_provider_without_nvml():
    with patch(
        "trainstats.samplers.system_metrics.nvmlInit", side_effect=_nvml_error()
    ):
        provider = RuntimeMetricsProvider(gc_monitor=GCMonitor())

    assert provider.nvml_available is False

    mem = provider.memory()
    assert isinstance(mem, MemoryStats)
    assert mem.host_used > 0
    assert mem.host_max >= mem.host_used
    assert len(mem.device_used) == provider.gpu_count

    hw = provider.hardware_info()
    assert isinstance(hw, HardwareInfo)
    assert hw.cpu_count >= 1
    assert hw.device_count == len(hw.device_total_memory) == len(hw.device_descriptions)
    assert hw.hardware_uid

    assert isinstance(provider.gc_stats(), dict)


def test_runtime_provider_survives_psutil_failure():
    with patch(
        "trainstats.samplers.system_metrics.nvmlInit", side_effect=_nvml_error()
    ):
        provider = RuntimeMetricsProvider(gc_monitor=GCMonitor())

    with patch.object(provider.process, "memory_info", side_effect=RuntimeError("boom")):
        assert provider.memory().host_used == 0.0


def test_runtime_provider_with_mocked_gpu():
    class _MemInfo:
        total = 8 * 1024**3
        used = 3 * 1024**3

    with patch("trainstats.samplers.system_metrics.nvmlInit", return_value=None), patch(
        "trainstats.samplers.system_metrics.nvmlDeviceGetCount", return_value=2
    ), patch(
        "trainstats.samplers.system_metrics.nvmlDeviceGetHandleByIndex",
        side_effect=lambda i: f"handle{i}",
    ), patch(
        "trainstats.samplers.system_metrics.nvmlDeviceGetMemoryInfo",
        return_value=_MemInfo(),
    ), patch(
        "trainstats.samplers.system_metrics.nvmlDeviceGetName",
        return_value=b"Fake GPU",
    ):
        provider = RuntimeMetricsProvider(gc_monitor=GCMonitor())
        hw = provider.hardware_info()
        mem = provider.memory()

    assert hw.device_count == 2
    assert hw.device_total_memory == (float(8 * 1024**3),) * 2
    assert hw.device_memory_max == float(16 * 1024**3)
    assert hw.device_descriptions == ("Fake GPU", "Fake GPU")

    # memory and hardware describe the same devices
    assert len(mem.device_used) == len(mem.device_max) == hw.device_count
    assert mem.device_used == (float(3 * 1024**3),) * 2
    assert mem.device_max == hw.device_total_memory
