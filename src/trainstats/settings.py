"""
trainstats settings (configuration schema).

This module defines the immutable configuration dataclasses consumed by the
StatsListener:

- StatsInitConfig   : which one-time sections go into the initialization report
- StatsUpdateConfig : what every update report contains, and how often one is made
- ListenerSettings  : how the listener behaves when the router misbehaves

All dataclasses are frozen and validated on construction. Invalid values raise
ConfigurationInvalid immediately rather than at the first training iteration.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from trainstats.errors import ConfigurationInvalid


class StatsType(str, Enum):
    """Numeric categories summarized by update reports."""

    PARAMETERS = "parameters"
    UPDATES = "updates"
    ACTIVATIONS = "activations"


class RouterErrorPolicy(str, Enum):
    LOG_AND_CONTINUE = "log_and_continue"
    FAIL = "fail"


@dataclass(frozen=True)
class CategoryConfig:
    """Per-category statistic switches."""

    histograms: bool = True
    num_histogram_bins: int = 20
    mean: bool = False
    stdev: bool = True
    mean_magnitudes: bool = True

    def __post_init__(self):
        if int(self.num_histogram_bins) < 1:
            raise ConfigurationInvalid(
                f"num_histogram_bins must be >= 1, got {self.num_histogram_bins}"
            )


def _default_categories() -> Dict[StatsType, CategoryConfig]:
    return {t: CategoryConfig() for t in StatsType}


@dataclass(frozen=True)
class StatsInitConfig:
    collect_software_info: bool = True
    collect_hardware_info: bool = True
    collect_model_info: bool = True


@dataclass(frozen=True)
class StatsUpdateConfig:
    """
    Update report configuration.

    Notes:
    - `reporting_frequency` N means "one update report every N iterations";
      the first iteration always reports.
    - Categories missing from `categories` fall back to CategoryConfig().
    """

    reporting_frequency: int = 1
    collect_performance_stats: bool = True
    collect_memory_stats: bool = True
    collect_garbage_collection_stats: bool = True
    collect_learning_rates: bool = True
    categories: Dict[StatsType, CategoryConfig] = field(
        default_factory=_default_categories
    )

    def __post_init__(self):
        if isinstance(self.reporting_frequency, bool) or not isinstance(
            self.reporting_frequency, int
        ):
            raise ConfigurationInvalid(
                f"reporting_frequency must be an int, got {self.reporting_frequency!r}"
            )
        if self.reporting_frequency < 1:
            raise ConfigurationInvalid(
                f"reporting_frequency must be >= 1, got {self.reporting_frequency}"
            )
        merged = _default_categories()
        for key, value in self.categories.items():
            try:
                merged[StatsType(key)] = value
            except ValueError as e:
                raise ConfigurationInvalid(f"Unknown stats type {key!r}") from e
        object.__setattr__(self, "categories", merged)

    def category(self, stats_type: StatsType) -> CategoryConfig:
        return self.categories[StatsType(stats_type)]

    def collect_histograms(self, stats_type: StatsType) -> bool:
        return self.category(stats_type).histograms

    def num_histogram_bins(self, stats_type: StatsType) -> int:
        return self.category(stats_type).num_histogram_bins

    def collect_mean(self, stats_type: StatsType) -> bool:
        return self.category(stats_type).mean

    def collect_stdev(self, stats_type: StatsType) -> bool:
        return self.category(stats_type).stdev

    def collect_mean_magnitudes(self, stats_type: StatsType) -> bool:
        return self.category(stats_type).mean_magnitudes


@dataclass(frozen=True)
class ListenerSettings:
    """
    Listener behavior that is not about *what* is collected.

    - `router_error_policy`: LOG_AND_CONTINUE keeps training alive when the
      router fails; FAIL raises RouterFailure to the caller.
    - `max_error_messages`: warnings printed before going quiet.
    - `hostname_timeout_sec`: bound on the external hostname query.
    """

    router_error_policy: RouterErrorPolicy = RouterErrorPolicy.LOG_AND_CONTINUE
    max_error_messages: int = 10
    hostname_timeout_sec: float = 2.0

    def __post_init__(self):
        try:
            policy = RouterErrorPolicy(self.router_error_policy)
        except ValueError as e:
            raise ConfigurationInvalid(
                f"Unknown router error policy {self.router_error_policy!r}"
            ) from e
        object.__setattr__(self, "router_error_policy", policy)
        if self.max_error_messages < 0:
            raise ConfigurationInvalid(
                f"max_error_messages must be >= 0, got {self.max_error_messages}"
            )
        if self.hostname_timeout_sec <= 0:
            raise ConfigurationInvalid(
                f"hostname_timeout_sec must be > 0, got {self.hostname_timeout_sec}"
            )
