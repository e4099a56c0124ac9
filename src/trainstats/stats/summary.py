"""
Numeric summary engine.

Pure functions over mappings of named arrays (name -> tensor). Nothing here
keeps state, so the functions are safe to call from several listeners at once
on disjoint inputs.

Conventions
-----------
- Inputs are coerced with `torch.as_tensor` and detached; reductions run in
  float64 on the tensor's own device, only scalars are copied back.
- Standard deviation is the population standard deviation (divide by N), so
  constant input gives 0 for any N >= 1.
- Empty arrays summarize to NaN.
- Output mappings preserve the input order.
"""

import math
from enum import Enum
from typing import Any, Dict, Mapping

import torch

from trainstats.errors import ConfigurationInvalid
from trainstats.reports.schema import Histogram


class SummaryStat(str, Enum):
    MEAN = "mean"
    STDEV = "stdev"
    MEAN_MAGNITUDE = "mean_magnitude"


def _as_float64(value: Any) -> torch.Tensor:
    t = torch.as_tensor(value).detach()
    return t.reshape(-1).to(torch.float64)


def _summarize_one(t: torch.Tensor, statistic: SummaryStat) -> float:
    if t.numel() == 0:
        return math.nan
    if statistic is SummaryStat.MEAN:
        return float(t.mean().item())
    if statistic is SummaryStat.STDEV:
        return float(t.std(correction=0).item())
    if statistic is SummaryStat.MEAN_MAGNITUDE:
        return float(t.abs().sum().item() / t.numel())
    raise ValueError(f"Unknown statistic: {statistic!r}")


def summarize(
    named_arrays: Mapping[str, Any], statistic: SummaryStat
) -> Dict[str, float]:
    """
    Compute one summary statistic for every named array.

    Parameters
    ----------
    named_arrays : Mapping[str, Any]
        name -> tensor (or anything torch.as_tensor accepts).
    statistic : SummaryStat
        MEAN, STDEV (population) or MEAN_MAGNITUDE (sum(|x|) / N).

    Returns
    -------
    Dict[str, float]
        name -> value, in input order.
    """
    statistic = SummaryStat(statistic)
    return {
        name: _summarize_one(_as_float64(arr), statistic)
        for name, arr in named_arrays.items()
    }


def _histogram_one(t: torch.Tensor, num_bins: int) -> Histogram:
    t = t[torch.isfinite(t)]
    if t.numel() == 0:
        return Histogram(min=0.0, max=0.0, num_bins=num_bins, counts=(0,) * num_bins)

    lo = float(t.min().item())
    hi = float(t.max().item())

    if hi == lo:
        counts = [0] * num_bins
        counts[0] = int(t.numel())
    else:
        width = (hi - lo) / num_bins
        idx = torch.floor((t - lo) / width).to(torch.int64)
        # last bin is closed, so the maximum lands in bin num_bins - 1
        idx = idx.clamp_(0, num_bins - 1)
        counts = torch.bincount(idx, minlength=num_bins).tolist()

    return Histogram(
        min=lo,
        max=hi,
        num_bins=num_bins,
        counts=tuple(int(c) for c in counts),
    )


def histogram(named_arrays: Mapping[str, Any], num_bins: int) -> Dict[str, Histogram]:
    """
    Fixed-bin histogram for every named array.

    Bins are equal width over the array's actual [min, max]. Each bin is
    half-open [a, b) except the last, which is closed. An array with
    min == max puts every element in the first bin. Non-finite values are
    ignored.
    """
    num_bins = int(num_bins)
    if num_bins < 1:
        raise ConfigurationInvalid(f"num_bins must be >= 1, got {num_bins}")
    return {
        name: _histogram_one(_as_float64(arr), num_bins)
        for name, arr in named_arrays.items()
    }
