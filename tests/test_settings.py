import pytest

from trainstats.errors import ConfigurationInvalid
from trainstats.settings import (
    CategoryConfig,
    ListenerSettings,
    RouterErrorPolicy,
    StatsType,
    StatsUpdateConfig,
)


def test_defaults():
    cfg = StatsUpdateConfig()
    assert cfg.reporting_frequency == 1
    for t in StatsType:
        assert cfg.collect_histograms(t) is True
        assert cfg.num_histogram_bins(t) == 20
        assert cfg.collect_mean(t) is False
        assert cfg.collect_stdev(t) is True
        assert cfg.collect_mean_magnitudes(t) is True


@pytest.mark.parametrize("freq", [0, -1])
def test_reporting_frequency_must_be_positive(freq):
    with pytest.raises(ConfigurationInvalid):
        StatsUpdateConfig(reporting_frequency=freq)


def test_reporting_frequency_must_be_int():
    with pytest.raises(ConfigurationInvalid):
        StatsUpdateConfig(reporting_frequency=2.5)


def test_bin_count_must_be_positive():
    with pytest.raises(ConfigurationInvalid):
        CategoryConfig(num_histogram_bins=0)


def test_partial_categories_fall_back_to_defaults():
    cfg = StatsUpdateConfig(
        categories={"updates": CategoryConfig(histograms=False, mean=True)}
    )
    assert cfg.collect_histograms(StatsType.UPDATES) is False
    assert cfg.collect_mean(StatsType.UPDATES) is True
    assert cfg.collect_histograms(StatsType.PARAMETERS) is True


def test_unknown_category_is_rejected():
    with pytest.raises(ConfigurationInvalid):
        StatsUpdateConfig(categories={"weights": CategoryConfig()})


def test_configuration_invalid_is_a_value_error():
    with pytest.raises(ValueError):
        StatsUpdateConfig(reporting_frequency=0)


def test_listener_settings():
    s = ListenerSettings(router_error_policy="fail")
    assert s.router_error_policy is RouterErrorPolicy.FAIL
    with pytest.raises(ConfigurationInvalid):
        ListenerSettings(router_error_policy="explode")
    with pytest.raises(ConfigurationInvalid):
        ListenerSettings(hostname_timeout_sec=0)
