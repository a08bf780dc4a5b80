# L7: Analytics Layer - Revenue concentration (Herfindahl-Hirschman index)
import pandas as pd
from typing import Dict, Iterable, Optional

from salesperf.config import Settings, get_settings
from salesperf.layers.l7_analytics.aggregator import of_kind
from salesperf.models.schemas.schemas import ConcentrationResult, RiskLevel, ShareItem


def hhi(amounts: Iterable[float]) -> float:
    """
    Sum of squared fractional shares. Non-positive amounts carry no share.
    Returns 0 for an empty or zero-total distribution.
    """
    positive = [float(a) for a in amounts if a > 0]
    total = sum(positive)
    if total <= 0:
        return 0.0
    return sum((a / total) ** 2 for a in positive)


def risk_level(value: float, settings: Optional[Settings] = None) -> RiskLevel:
    settings = settings or get_settings()
    if value > settings.HHI_HIGH:
        return RiskLevel.HIGH
    if value > settings.HHI_MEDIUM:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def concentration(
    amounts: Dict[str, float],
    names: Optional[Dict[str, str]] = None,
    settings: Optional[Settings] = None
) -> ConcentrationResult:
    """Concentration of one entity over its sub-entities (key -> amount)."""
    names = names or {}
    positive = {k: v for k, v in amounts.items() if v > 0}
    total = sum(positive.values())
    if total <= 0:
        return ConcentrationResult(
            hhi=0.0, risk_level=RiskLevel.LOW, top_share=0.0, count=0
        )

    items = sorted(
        (
            ShareItem(key=k, name=names.get(k) or k, amount=v, share=v / total)
            for k, v in positive.items()
        ),
        key=lambda item: item.amount,
        reverse=True,
    )
    value = sum(item.share ** 2 for item in items)
    return ConcentrationResult(
        hhi=value,
        risk_level=risk_level(value, settings),
        top_share=items[0].share,
        count=len(items),
        items=items,
    )


def concentration_by(
    df: pd.DataFrame,
    entity: str,
    sub_entity: str,
    sub_entity_name: Optional[str] = None,
    settings: Optional[Settings] = None
) -> Dict[str, ConcentrationResult]:
    """Concentration per entity, e.g. customers per sales rep."""
    keyed = df[(df[entity] != "") & df[entity].notna()]
    if keyed.empty:
        return {}

    totals = keyed.groupby([entity, sub_entity], sort=False)["amount"].sum()
    per_entity: Dict[str, Dict[str, float]] = {}
    for (key, sub_key), amount in totals.items():
        per_entity.setdefault(str(key), {})[str(sub_key)] = float(amount)

    names: Dict[str, str] = {}
    if sub_entity_name:
        labelled = keyed[keyed[sub_entity_name] != ""]
        names = {
            str(k): str(v)
            for k, v in labelled.groupby(sub_entity, sort=False)[sub_entity_name].last().items()
        }

    return {
        key: concentration(amounts, names, settings)
        for key, amounts in per_entity.items()
    }


def customer_concentration_by_person(
    df: pd.DataFrame,
    settings: Optional[Settings] = None
) -> Dict[str, ConcentrationResult]:
    """Customer concentration for every sales rep, from sale rows."""
    sales = of_kind(df, "sale").copy()
    sales.loc[sales["customer"] == "", "customer"] = "(unassigned)"
    return concentration_by(sales, "person", "customer", "customer_name", settings)


def org_concentration(
    df: pd.DataFrame,
    settings: Optional[Settings] = None
) -> ConcentrationResult:
    """How concentrated company revenue is across sales organizations."""
    sales = of_kind(df, "sale")
    sales = sales[sales["org"] != ""]
    totals = {str(k): float(v) for k, v in sales.groupby("org", sort=False)["amount"].sum().items()}
    return concentration(totals, settings=settings)
