# L7: Analytics Layer - Aggregator
import pandas as pd
from typing import Dict, List, Optional


def of_kind(df: pd.DataFrame, kind: str) -> pd.DataFrame:
    """Rows of one record variant."""
    return df[df["kind"] == kind]


def _keyed(df: pd.DataFrame, key: str) -> pd.DataFrame:
    return df[df[key].notna() & (df[key] != "")]


def sum_by(df: pd.DataFrame, key: str, value: str = "amount") -> Dict[str, float]:
    """
    Sum a value column per key (person, org, customer, product or month).
    Rows with an empty key are skipped. Keys keep first-appearance order.
    """
    keyed = _keyed(df, key)
    if keyed.empty:
        return {}
    totals = keyed.groupby(key, sort=False)[value].sum()
    return {str(k): float(v) for k, v in totals.items()}


def count_by(df: pd.DataFrame, key: str) -> Dict[str, int]:
    """Row count per key."""
    keyed = _keyed(df, key)
    if keyed.empty:
        return {}
    counts = keyed.groupby(key, sort=False).size()
    return {str(k): int(v) for k, v in counts.items()}


def distinct_count_by(df: pd.DataFrame, key: str, column: str) -> Dict[str, int]:
    """Number of distinct non-empty values of `column` per key."""
    keyed = _keyed(_keyed(df, key), column)
    if keyed.empty:
        return {}
    counts = keyed.groupby(key, sort=False)[column].nunique()
    return {str(k): int(v) for k, v in counts.items()}


def last_label_by(df: pd.DataFrame, key: str, column: str) -> Dict[str, str]:
    """Latest non-empty label (e.g. a display name) seen per key."""
    labelled = _keyed(_keyed(df, key), column)
    if labelled.empty:
        return {}
    labels = labelled.groupby(key, sort=False)[column].last()
    return {str(k): str(v) for k, v in labels.items()}


def first_label_by(df: pd.DataFrame, key: str, column: str) -> Dict[str, str]:
    labelled = _keyed(_keyed(df, key), column)
    if labelled.empty:
        return {}
    labels = labelled.groupby(key, sort=False)[column].first()
    return {str(k): str(v) for k, v in labels.items()}


def sum_by_month(df: pd.DataFrame, value: str = "amount") -> Dict[str, float]:
    """Monthly totals in chronological order; undated rows are left out."""
    totals = sum_by(df, "month", value)
    return {month: totals[month] for month in sorted(totals)}


def month_entity_totals(
    df: pd.DataFrame,
    entity: str,
    value: str = "amount"
) -> Dict[str, Dict[str, float]]:
    """
    Net amount per (month, entity) in one grouped pass.
    Returns {month: {entity: amount}} with months sorted.
    """
    keyed = _keyed(_keyed(df, "month"), entity)
    result: Dict[str, Dict[str, float]] = {}
    if keyed.empty:
        return result
    totals = keyed.groupby(["month", entity], sort=False)[value].sum()
    for (month, key), amount in totals.items():
        result.setdefault(str(month), {})[str(key)] = float(amount)
    return {month: result[month] for month in sorted(result)}


def latest_month(df: pd.DataFrame) -> Optional[str]:
    months = df["month"].dropna()
    months = months[months != ""]
    if months.empty:
        return None
    return str(months.max())


def months_in(df: pd.DataFrame) -> List[str]:
    months = df["month"].dropna()
    return sorted(str(m) for m in months.unique() if m)
