"""
Trading Village — Indicator Library

Stateless numeric primitives shared by every detector: moving averages,
standard deviation, RSI, MACD, Bollinger Bands, bar ranges, returns and
Pearson correlation.

Every function accepts a plain sequence or a numpy array and returns plain
Python floats. Degenerate inputs (empty series, zero denominators) resolve to
a defined fallback instead of raising or leaking NaN/inf.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence, Union

import numpy as np

Series = Union[Sequence[float], np.ndarray]


class MACDResult(NamedTuple):
    macd: float
    signal: float
    histogram: float


class BollingerBands(NamedTuple):
    upper: float
    middle: float
    lower: float
    width: float


def _as_array(data: Series) -> np.ndarray:
    return np.asarray(data, dtype=np.float64)


def _finite(value: float, fallback: float = 0.0) -> float:
    value = float(value)
    return value if math.isfinite(value) else fallback


# ──────────────────────────────────────────────
# Guarded arithmetic
# ──────────────────────────────────────────────

def safe_ratio(numerator: float, denominator: float, default: float = 1.0) -> float:
    """numerator / denominator, or ``default`` when the denominator is 0."""
    if denominator == 0:
        return default
    return _finite(numerator / denominator, default)


def pct_change(new: float, old: float) -> float:
    """Fractional change from ``old`` to ``new`` (0.0 when ``old`` is 0)."""
    if old == 0:
        return 0.0
    return _finite((new - old) / old)


# ──────────────────────────────────────────────
# Moving averages & dispersion
# ──────────────────────────────────────────────

def sma(data: Series, period: int) -> float:
    """Mean of the last ``period`` values.

    With fewer than ``period`` values the last available value is returned
    (0.0 for an empty series).
    """
    arr = _as_array(data)
    if arr.size == 0:
        return 0.0
    if arr.size < period:
        return _finite(arr[-1])
    return _finite(arr[-period:].mean())


def ema_series(data: Series, period: int) -> np.ndarray:
    """Running EMA at every index, seeded with the first sample."""
    arr = _as_array(data)
    out = np.empty_like(arr)
    if arr.size == 0:
        return out
    multiplier = 2 / (period + 1)
    out[0] = arr[0]
    for i in range(1, arr.size):
        out[i] = (arr[i] - out[i - 1]) * multiplier + out[i - 1]
    return out


def ema(data: Series, period: int) -> float:
    """Exponential moving average of the whole series (0.0 when empty)."""
    series = ema_series(data, period)
    if series.size == 0:
        return 0.0
    return _finite(series[-1])


def std_dev(data: Series) -> float:
    """Population standard deviation (divide by N). 0.0 when empty."""
    arr = _as_array(data)
    if arr.size == 0:
        return 0.0
    return _finite(arr.std())


# ──────────────────────────────────────────────
# Oscillators
# ──────────────────────────────────────────────

def rsi(closes: Series, period: int = 14) -> float:
    """Relative Strength Index over the trailing ``period`` deltas.

    50.0 without enough history, 100.0 when the average loss is exactly 0.
    """
    arr = _as_array(closes)
    if arr.size < period + 1:
        return 50.0

    deltas = np.diff(arr[-(period + 1):])
    avg_gain = deltas[deltas > 0].sum() / period
    avg_loss = -deltas[deltas < 0].sum() / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return _finite(100 - 100 / (1 + rs), 50.0)


def rsi_series(closes: Series, period: int = 14) -> list[float]:
    """RSI of every prefix ending at index ``period`` .. ``n - 1``."""
    arr = _as_array(closes)
    return [rsi(arr[: i + 1], period) for i in range(period, arr.size)]


def macd(closes: Series) -> MACDResult:
    """MACD(12, 26) with a 9-period signal over the reconstructed MACD line."""
    arr = _as_array(closes)
    if arr.size == 0:
        return MACDResult(0.0, 0.0, 0.0)

    # A prefix EMA seeded with the first sample equals the running EMA at
    # that index, so the MACD line is the difference of two running EMAs.
    macd_line = ema_series(arr, 12) - ema_series(arr, 26)
    macd_value = _finite(macd_line[-1])
    signal = ema(macd_line[-9:], 9)

    return MACDResult(macd_value, signal, macd_value - signal)


def bollinger_bands(closes: Series, period: int = 20) -> BollingerBands:
    """Middle = SMA(period); bands at ±2 population stdev of the last ``period`` closes."""
    arr = _as_array(closes)
    middle = sma(arr, period)
    deviation = std_dev(arr[-period:])

    return BollingerBands(
        upper=middle + 2 * deviation,
        middle=middle,
        lower=middle - 2 * deviation,
        width=safe_ratio(4 * deviation, middle, default=0.0),
    )


# ──────────────────────────────────────────────
# Ranges, returns, correlation
# ──────────────────────────────────────────────

def bar_ranges(highs: Series, lows: Series) -> np.ndarray:
    """Absolute high-low range per bar."""
    return _as_array(highs) - _as_array(lows)


def relative_ranges(highs: Series, lows: Series, opens: Series) -> np.ndarray:
    """Per-bar (high - low) / open; bars with a zero open contribute 0."""
    ranges = bar_ranges(highs, lows)
    opens_arr = _as_array(opens)
    out = np.zeros_like(ranges)
    np.divide(ranges, opens_arr, out=out, where=opens_arr != 0)
    return out


def simple_returns(closes: Series) -> np.ndarray:
    """Bar-over-bar returns; the first element is 0."""
    arr = _as_array(closes)
    out = np.zeros_like(arr)
    if arr.size < 2:
        return out
    prev = arr[:-1]
    np.divide(arr[1:] - prev, prev, out=out[1:], where=prev != 0)
    return out


def pearson_correlation(a: Series, b: Series) -> float:
    """Pearson correlation over the trailing common length, in [-1, 1].

    0.0 when fewer than 5 paired samples exist or either side has no variance.
    """
    arr_a = _as_array(a)
    arr_b = _as_array(b)
    n = min(arr_a.size, arr_b.size)
    if n < 5:
        return 0.0

    diff_a = arr_a[-n:] - arr_a[-n:].mean()
    diff_b = arr_b[-n:] - arr_b[-n:].mean()

    denominator = math.sqrt(float((diff_a * diff_a).sum() * (diff_b * diff_b).sum()))
    if denominator == 0:
        return 0.0
    value = _finite(float((diff_a * diff_b).sum()) / denominator)
    return max(-1.0, min(1.0, value))
