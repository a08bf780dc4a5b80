# L7: Analytics Layer - Monthly sales trend and linear forecast
import math
import numpy as np
from typing import List, Optional, Sequence, Tuple

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import of_kind, sum_by_month
from salesperf.models.schemas.records import SaleRecord
from salesperf.models.schemas.schemas import ForecastPoint, ForecastStats, TrendDirection

Z_95 = 1.96


def moving_average(values: Sequence[float], window: int) -> List[Optional[float]]:
    """Trailing mean; None until the window is full."""
    if window <= 0:
        return [None] * len(values)
    result: List[Optional[float]] = []
    for i in range(len(values)):
        if i < window - 1:
            result.append(None)
        else:
            result.append(float(np.mean(values[i - window + 1:i + 1])))
    return result


def linear_regression(values: Sequence[float]) -> Tuple[float, float, float]:
    """OLS fit of value against month index. Returns (slope, intercept, r2)."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0]), 1.0

    x = np.arange(n, dtype=float)
    y = np.asarray(values, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)

    predicted = slope * x + intercept
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    r2 = 1.0 if ss_tot == 0 else 1 - ss_res / ss_tot
    return float(slope), float(intercept), r2


def residual_std(values: Sequence[float], slope: float, intercept: float) -> float:
    """Residual standard error with n-2 degrees of freedom."""
    n = len(values)
    if n <= 2:
        return 0.0
    x = np.arange(n, dtype=float)
    residuals = np.asarray(values, dtype=float) - (slope * x + intercept)
    return math.sqrt(float(np.sum(residuals ** 2)) / (n - 2))


def next_month(month: str) -> str:
    year, mon = (int(p) for p in month.split("-"))
    mon += 1
    if mon > 12:
        mon = 1
        year += 1
    return f"{year:04d}-{mon:02d}"


def avg_growth_rate(values: Sequence[float]) -> float:
    """Mean month-over-month change (fraction) over months with a non-zero predecessor."""
    changes = [
        (values[i] - values[i - 1]) / abs(values[i - 1])
        for i in range(1, len(values))
        if values[i - 1] != 0
    ]
    return sum(changes) / len(changes) if changes else 0.0


def calc_sales_forecast(
    sales: Sequence[SaleRecord],
    horizon: Optional[int] = None,
    settings: Optional[Settings] = None
) -> Tuple[List[ForecastPoint], ForecastStats]:
    """
    Monthly totals with 3/6-month moving averages and a straight-line
    projection `horizon` months ahead, bounded by a 95% prediction interval.
    """
    settings = settings or get_settings()
    horizon = settings.FORECAST_HORIZON if horizon is None else horizon

    monthly = sum_by_month(of_kind(records_to_frame(sales), "sale"))
    if not monthly:
        return [], ForecastStats(
            slope=0.0, intercept=0.0, r2=0.0, trend=TrendDirection.FLAT, avg_growth_rate=0.0
        )

    months = list(monthly)
    amounts = [monthly[m] for m in months]
    ma3 = moving_average(amounts, 3)
    ma6 = moving_average(amounts, 6)
    slope, intercept, r2 = linear_regression(amounts)
    std = residual_std(amounts, slope, intercept)

    flat_band = abs(intercept) * 0.01
    if slope > flat_band:
        trend = TrendDirection.UP
    elif slope < -flat_band:
        trend = TrendDirection.DOWN
    else:
        trend = TrendDirection.FLAT

    points = [
        ForecastPoint(month=m, actual=amounts[i], moving_avg_3=ma3[i], moving_avg_6=ma6[i])
        for i, m in enumerate(months)
    ]

    n = len(amounts)
    mean_x = (n - 1) / 2
    ss_x = sum((j - mean_x) ** 2 for j in range(n))
    month = months[-1]
    for step in range(horizon):
        x = n + step
        value = slope * x + intercept
        month = next_month(month)
        # interval widens with distance from the centre of the data
        se = std * math.sqrt(1 + 1 / n + (x - mean_x) ** 2 / ss_x) if ss_x > 0 else std
        points.append(ForecastPoint(
            month=month,
            forecast=value,
            upper_bound=value + Z_95 * se,
            lower_bound=max(0.0, value - Z_95 * se),
        ))

    stats = ForecastStats(
        slope=slope,
        intercept=intercept,
        r2=r2,
        trend=trend,
        avg_growth_rate=avg_growth_rate(amounts),
    )
    return points, stats
