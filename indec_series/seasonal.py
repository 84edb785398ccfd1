"""Seasonal adjustment and trend-cycle extraction for monthly series.

``adjust`` is a pure function over a list of ``(date, value)`` pairs. The
Hodrick-Prescott trend is an approximation: the banded system
``(I + lam * D'D) x = y`` is relaxed with a fixed number of Gauss-Seidel
sweeps instead of being solved exactly.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from indec_series.records import TimeSeriesPoint

MOVING_AVERAGE = "moving-average"
RATIO_TO_MOVING_AVERAGE = "ratio-to-moving-average"
TREND_CYCLE = "trend-cycle"
NO_ADJUSTMENT = "none"

METHODS = (MOVING_AVERAGE, RATIO_TO_MOVING_AVERAGE, TREND_CYCLE, NO_ADJUSTMENT)

DEFAULT_WINDOW = 12
DEFAULT_LAMBDA = 1600.0
DEFAULT_ITERATIONS = 100

Observation = Tuple[str, Optional[float]]


def _as_float(value: Optional[float]) -> float:
    if value is None:
        return math.nan
    return float(value)


def _round1(value: float) -> float:
    if math.isnan(value):
        return value
    return round(value, 1)


def _sorted_observations(points: Iterable[Observation]) -> List[Tuple[str, float]]:
    # sorted() is stable: equal dates keep their input order
    return sorted(((str(d), _as_float(v)) for d, v in points), key=lambda item: item[0])


def _month(iso_date: str) -> int:
    return int(iso_date[5:7])


def clamped_moving_average(values: Sequence[float], window_size: int) -> List[float]:
    """Mean of the available values within ``window_size // 2`` of each index."""
    half = window_size // 2
    result = []
    n = len(values)
    for i in range(n):
        window = [v for v in values[max(0, i - half):min(n, i + half + 1)] if not math.isnan(v)]
        result.append(sum(window) / len(window) if window else math.nan)
    return result


def centered_moving_average(values: Sequence[float], window_size: int) -> List[float]:
    """Full-window centered moving average; NaN where the window does not fit.

    Even windows use the 2xm average (half weight on both end points).
    """
    half = window_size // 2
    n = len(values)
    if window_size % 2 == 0:
        weights = [0.5] + [1.0] * (window_size - 1) + [0.5]
    else:
        weights = [1.0] * window_size

    result = []
    for i in range(n):
        if i - half < 0 or i + half >= n:
            result.append(math.nan)
            continue
        segment = values[i - half:i + half + 1]
        result.append(sum(w * v for w, v in zip(weights, segment)) / window_size)
    return result


def seasonal_factors(points: Iterable[Observation], window_size: int = DEFAULT_WINDOW) -> Dict[int, float]:
    """Normalized seasonal factor per calendar month (summing to ``window_size``)."""
    observations = _sorted_observations(points)
    values = [v for _, v in observations]
    averages = centered_moving_average(values, window_size)

    by_month: Dict[int, List[float]] = {}
    for (iso_date, value), average in zip(observations, averages):
        if math.isnan(average) or average == 0 or math.isnan(value):
            continue
        by_month.setdefault(_month(iso_date), []).append(value / average)

    factors = {month: sum(ratios) / len(ratios) for month, ratios in by_month.items()}
    total = sum(factors.values())
    if not factors or total == 0 or math.isnan(total):
        return {}
    return {month: factor * window_size / total for month, factor in factors.items()}


def hodrick_prescott(
    values: Sequence[Optional[float]],
    lam: float = DEFAULT_LAMBDA,
    iterations: int = DEFAULT_ITERATIONS,
) -> List[float]:
    """Approximate HP trend by Gauss-Seidel relaxation, rounded to one decimal.

    Starts from the observations themselves; NaN observations stay NaN and do
    not feed their neighbours.
    """
    y = [_as_float(v) for v in values]
    n = len(y)
    if n <= 2:
        return [_round1(v) for v in y]

    # Nonzero entries of D'D for the second-difference operator
    bands: List[Dict[int, float]] = [dict() for _ in range(n)]
    for k in range(n - 2):
        stencil = ((k, 1.0), (k + 1, -2.0), (k + 2, 1.0))
        for i, di in stencil:
            for j, dj in stencil:
                bands[i][j] = bands[i].get(j, 0.0) + di * dj

    x = list(y)
    valid = [not math.isnan(v) for v in y]
    for _ in range(max(iterations, 0)):
        for i in range(n):
            if not valid[i]:
                continue
            diagonal = 1.0 + lam * bands[i][i]
            off = sum(lam * coef * x[j] for j, coef in bands[i].items() if j != i and valid[j])
            x[i] = (y[i] - off) / diagonal
    return [_round1(v) for v in x]


def hp_residual(values: Sequence[float], trend: Sequence[float], lam: float = DEFAULT_LAMBDA) -> float:
    """Max absolute residual of ``(I + lam D'D) trend - values``."""
    n = len(values)
    worst = 0.0
    for i in range(n):
        dtd = 0.0
        for k in range(max(0, i - 2), min(i, n - 3) + 1):
            second = trend[k] - 2 * trend[k + 1] + trend[k + 2]
            dtd += second * (1.0 if i in (k, k + 2) else -2.0)
        worst = max(worst, abs(trend[i] + lam * dtd - values[i]))
    return worst


def _moving_average_points(observations, window_size) -> List[TimeSeriesPoint]:
    values = [v for _, v in observations]
    averages = clamped_moving_average(values, window_size)
    return [
        TimeSeriesPoint(
            date=iso_date,
            value=_round1(average),
            original_value=value,
            is_seasonally_adjusted=True,
        )
        for (iso_date, value), average in zip(observations, averages)
    ]


def _ratio_points(observations, window_size) -> List[TimeSeriesPoint]:
    values = [v for _, v in observations]
    averages = centered_moving_average(values, window_size)
    factors = seasonal_factors(observations, window_size)
    points = []
    for (iso_date, value), average in zip(observations, averages):
        factor = factors.get(_month(iso_date), 1.0)
        if math.isnan(factor) or factor == 0:
            factor = 1.0
        points.append(
            TimeSeriesPoint(
                date=iso_date,
                value=_round1(value / factor),
                original_value=value,
                is_seasonally_adjusted=True,
                cycle_trend_value=average,
            )
        )
    return points


def _trend_points(observations, lam, iterations) -> List[TimeSeriesPoint]:
    trend = hodrick_prescott([v for _, v in observations], lam=lam, iterations=iterations)
    return [
        TimeSeriesPoint(
            date=iso_date,
            value=smoothed,
            original_value=value,
            is_seasonally_adjusted=True,
            cycle_trend_value=smoothed,
        )
        for (iso_date, value), smoothed in zip(observations, trend)
    ]


def adjust(
    points: Iterable[Observation],
    method: str = MOVING_AVERAGE,
    window_size: int = DEFAULT_WINDOW,
    lam: float = DEFAULT_LAMBDA,
    iterations: int = DEFAULT_ITERATIONS,
) -> List[TimeSeriesPoint]:
    """Seasonally adjust ``(date, value)`` pairs with the given method."""
    if method not in METHODS:
        raise ValueError(f"Metodo de desestacionalizacion no soportado: {method}")
    if window_size < 1:
        raise ValueError("window_size debe ser positivo")

    observations = _sorted_observations(points)
    if not observations:
        return []

    if method == MOVING_AVERAGE:
        return _moving_average_points(observations, window_size)
    if method == RATIO_TO_MOVING_AVERAGE:
        return _ratio_points(observations, window_size)
    if method == TREND_CYCLE:
        return _trend_points(observations, lam, iterations)
    return [
        TimeSeriesPoint(date=iso_date, value=value, original_value=value, is_seasonally_adjusted=False)
        for iso_date, value in observations
    ]
