# L7: Analytics Layer - Dynamic thresholds
import numpy as np
from typing import Iterable, List, Sequence, Tuple

from salesperf.core.exceptions import InvalidConfigurationException
from salesperf.models.schemas.schemas import CustomerGrade, GradeThresholds


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Percentile of an ascending array with linear interpolation between
    neighbouring order statistics (index = p/100 * (n-1)).
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])
    return float(np.percentile(np.asarray(sorted_values, dtype=float), p, method="linear"))


def positive_sorted(amounts: Iterable[float]) -> List[float]:
    return sorted(float(a) for a in amounts if a > 0)


def dynamic_thresholds(
    amounts: Iterable[float],
    percentiles: Sequence[float] = (80.0, 60.0, 40.0)
) -> List[float]:
    """
    Cut-offs relative to the positive part of the given population.

    The population is whatever the caller passes in; nothing is cached,
    so two datasets never share thresholds.
    """
    for p in percentiles:
        if not 0 <= p <= 100:
            raise InvalidConfigurationException(
                f"Percentile out of range: {p}", details={"percentiles": list(percentiles)}
            )
    values = positive_sorted(amounts)
    return [percentile(values, p) for p in percentiles]


def grade_thresholds(
    amounts: Iterable[float],
    percentiles: Tuple[float, float, float] = (80.0, 60.0, 40.0)
) -> GradeThresholds:
    if len(percentiles) != 3 or not (percentiles[0] >= percentiles[1] >= percentiles[2]):
        raise InvalidConfigurationException(
            "Grade percentiles must be three descending values",
            details={"percentiles": list(percentiles)}
        )
    a, b, c = dynamic_thresholds(amounts, percentiles)
    return GradeThresholds(A=a, B=b, C=c)


def assign_grade(amount: float, thresholds: GradeThresholds) -> CustomerGrade:
    """N for no (or negative net) activity, otherwise the band the amount reaches."""
    if amount <= 0:
        return CustomerGrade.N
    if amount >= thresholds.A:
        return CustomerGrade.A
    if amount >= thresholds.B:
        return CustomerGrade.B
    if amount >= thresholds.C:
        return CustomerGrade.C
    return CustomerGrade.D
