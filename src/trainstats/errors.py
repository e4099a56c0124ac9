"""
Exception taxonomy for trainstats.

- UnsupportedModelTopology : fatal, the model is neither sequential nor graph
  structured, or asks for something its topology cannot provide.
- ConfigurationInvalid     : fatal, rejected at construction time.
- RouterFailure            : handing a record to the router failed. Only
                             raised when the listener runs with the FAIL policy.
- HostnameUnavailable      : recovered locally, the hostname field stays empty.
"""


class TrainStatsError(Exception):
    """Base class for all trainstats errors."""


class UnsupportedModelTopology(TrainStatsError):
    pass


class ConfigurationInvalid(TrainStatsError, ValueError):
    pass


class RouterFailure(TrainStatsError):
    pass


class HostnameUnavailable(TrainStatsError):
    pass
