# L7: Analytics Layer - Sales rep performance scoring
import pandas as pd
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass
import structlog

from salesperf.config import Settings, get_settings
from salesperf.core.exceptions import InvalidConfigurationException
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import (
    of_kind, sum_by, distinct_count_by, first_label_by
)
from salesperf.layers.l7_analytics.concentration import customer_concentration_by_person
from salesperf.models.schemas.records import (
    SaleRecord, OrderRecord, CollectionRecord,
    TeamContributionRecord, ReceivableAgingRecord
)
from salesperf.models.schemas.schemas import (
    AxisWeights, PerformanceProfile, PerformanceResult, PerformanceScore, RiskLevel
)

logger = structlog.get_logger()

AXES = ("sales", "orders", "margin", "collection", "receivable")


@dataclass
class ScoringWeights:
    """Relative axis weights. Unset axes default to an equal share."""
    sales: Optional[float] = None
    orders: Optional[float] = None
    margin: Optional[float] = None
    collection: Optional[float] = None
    receivable: Optional[float] = None


def normalize_weights(
    weights: Optional[ScoringWeights],
    five_axis: bool,
    total_max: float = 100.0
) -> AxisWeights:
    """
    Scale the active axis weights so they add up to total_max.
    The receivable axis is dropped entirely in 4-axis mode.
    """
    weights = weights or ScoringWeights()
    default = total_max / len(AXES)
    raw = {axis: getattr(weights, axis) for axis in AXES}
    raw = {axis: default if value is None else float(value) for axis, value in raw.items()}
    if not five_axis:
        raw["receivable"] = 0.0

    negative = {axis: value for axis, value in raw.items() if value < 0}
    if negative:
        raise InvalidConfigurationException("Axis weights must not be negative", details=negative)

    active = [axis for axis in AXES if five_axis or axis != "receivable"]
    total = sum(raw[axis] for axis in active)
    if total <= 0:
        raw = {axis: (1.0 if axis in active else 0.0) for axis in AXES}
        total = float(len(active))

    factor = total_max / total
    scaled = {axis: (raw[axis] * factor if axis in active else 0.0) for axis in AXES}

    # Last weighted axis takes the remainder so the axes add up to total_max exactly
    last = [axis for axis in active if raw[axis] > 0][-1]
    scaled[last] = total_max - sum(scaled[axis] for axis in active if axis != last)
    return AxisWeights(**scaled)


def person_name_maps(frame: pd.DataFrame) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Person id <-> display name, sales first then orders."""
    id_to_name: Dict[str, str] = {}
    name_to_id: Dict[str, str] = {}
    for kind in ("sale", "order"):
        rows = of_kind(frame, kind)
        rows = rows[(rows["person"] != "") & (rows["person_name"] != "")]
        pairs = rows[["person", "person_name"]].drop_duplicates()
        for person_id, name in pairs.itertuples(index=False):
            existing = name_to_id.get(name)
            if existing and existing != person_id:
                logger.warning("Duplicate person name", name=name, kept_id=existing, other_id=person_id)
            if kind == "sale" or person_id not in id_to_name:
                id_to_name[person_id] = name
            name_to_id.setdefault(name, person_id)
    return id_to_name, name_to_id


def _receivable_health(
    aging: Sequence[ReceivableAgingRecord],
    resolve
) -> Dict[str, float]:
    """1 - long-overdue share per person; no outstanding balance counts as fully healthy."""
    totals: Dict[str, List[float]] = {}
    for r in aging:
        person = (r.person or "").strip()
        if not person:
            continue
        entry = totals.setdefault(resolve(person), [0.0, 0.0])
        entry[0] += r.aging.total
        entry[1] += r.aging.long_overdue

    health = {}
    for person, (total, long_overdue) in totals.items():
        if total <= 0:
            health[person] = 1.0
        else:
            health[person] = min(1.0, max(0.0, 1 - long_overdue / total))
    return health


def _axis_scores(raw: Dict[str, float], axis_max: float) -> Dict[str, float]:
    """Scale each value against the best in the population."""
    best = max(raw.values(), default=0.0)
    if best <= 0 or axis_max <= 0:
        return {key: 0.0 for key in raw}
    return {key: max(0.0, value) / best * axis_max for key, value in raw.items()}


def rank_profiles(totals: Dict[str, float]) -> Dict[str, Tuple[int, float]]:
    """
    Ordinal ranking by total descending. Ties keep the order in which the
    people were first seen, so every rank is distinct.
    """
    ordered = sorted(totals, key=lambda key: -totals[key])
    n = len(ordered)
    ranks = {}
    for i, key in enumerate(ordered):
        rank = i + 1
        pct = 100.0 if n == 1 else 100.0 * (1 - (rank - 1) / (n - 1))
        ranks[key] = (rank, pct)
    return ranks


def calc_performance_scores(
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord] = (),
    collections: Sequence[CollectionRecord] = (),
    team_contributions: Sequence[TeamContributionRecord] = (),
    aging: Optional[Sequence[ReceivableAgingRecord]] = None,
    weights: Optional[ScoringWeights] = None,
    settings: Optional[Settings] = None
) -> PerformanceResult:
    """
    Score every sales rep on sales, orders, contribution margin, collection
    and (when aging data is supplied) receivable health.

    Each axis is scaled against the best rep in the filtered population,
    so the same rep can score differently under a different filter.
    """
    settings = settings or get_settings()
    five_axis = bool(aging)
    axis_max = normalize_weights(weights, five_axis, settings.SCORE_TOTAL_MAX)

    frame = records_to_frame(list(sales) + list(orders) + list(collections))
    sales_df = of_kind(frame, "sale")
    orders_df = of_kind(frame, "order")

    id_to_name, name_to_id = person_name_maps(frame)

    def resolve(key: str) -> str:
        return name_to_id.get(key, key)

    collections_df = of_kind(frame, "collection").copy()
    collections_df["person"] = collections_df["person"].map(resolve)

    person_sales = sum_by(sales_df, "person")
    person_orders = sum_by(orders_df, "person")
    person_collections = sum_by(collections_df, "person")

    contribution_rates: Dict[str, float] = {}
    for r in team_contributions:
        person = (r.person or "").strip()
        if person:
            contribution_rates[resolve(person)] = r.contribution_margin_rate.actual

    health = _receivable_health(aging or (), resolve) if five_axis else {}

    persons: List[str] = list(dict.fromkeys([*person_sales, *person_orders, *person_collections]))

    if not persons:
        logger.info("No sales reps in scope")
        return PerformanceResult(
            profiles=[], axis_count=5 if five_axis else 4, axis_max=axis_max,
            id_to_name=id_to_name, name_to_id=name_to_id
        )

    collection_rates = {}
    for p in persons:
        amount = person_sales.get(p, 0.0)
        collection_rates[p] = min(person_collections.get(p, 0.0) / amount, 1.0) if amount > 0 else 0.0

    raw = {
        "sales": {p: person_sales.get(p, 0.0) for p in persons},
        "orders": {p: person_orders.get(p, 0.0) for p in persons},
        "margin": {p: contribution_rates.get(p, 0.0) for p in persons},
        "collection": collection_rates,
        "receivable": {p: health.get(p, 1.0) for p in persons} if five_axis else {p: 0.0 for p in persons},
    }
    scores = {axis: _axis_scores(raw[axis], getattr(axis_max, axis)) for axis in AXES}
    totals = {p: sum(scores[axis][p] for axis in AXES) for p in persons}
    ranks = rank_profiles(totals)

    concentration = customer_concentration_by_person(frame, settings)
    customer_counts = distinct_count_by(sales_df, "person", "customer")
    product_counts = distinct_count_by(sales_df, "person", "product")
    orgs = {**first_label_by(orders_df, "person", "org"), **first_label_by(sales_df, "person", "org")}
    sale_names = first_label_by(sales_df, "person", "person_name")

    profiles = []
    for p in persons:
        rank, pct = ranks[p]
        conc = concentration.get(p)
        profiles.append(PerformanceProfile(
            id=p,
            name=sale_names.get(p) or id_to_name.get(p) or p,
            org=orgs.get(p, ""),
            score=PerformanceScore(
                sales_score=scores["sales"][p],
                order_score=scores["orders"][p],
                profit_score=scores["margin"][p],
                collection_score=scores["collection"][p],
                receivable_score=scores["receivable"][p],
                total_score=totals[p],
                rank=rank,
                percentile=pct,
            ),
            sales_amount=person_sales.get(p, 0.0),
            order_amount=person_orders.get(p, 0.0),
            collection_amount=person_collections.get(p, 0.0),
            collection_rate=collection_rates[p],
            contribution_margin_rate=contribution_rates.get(p, 0.0),
            receivable_health=health.get(p, 1.0) if five_axis else None,
            customer_count=customer_counts.get(p, 0),
            product_count=product_counts.get(p, 0),
            hhi=conc.hhi if conc else 0.0,
            hhi_risk_level=conc.risk_level if conc else RiskLevel.LOW,
            top_customer_share=conc.top_share if conc else 0.0,
            top_customers=conc.items[:settings.TOP_CUSTOMER_LIMIT] if conc else [],
        ))

    profiles.sort(key=lambda profile: profile.score.rank)
    logger.info("Performance scoring complete", reps=len(profiles), axes=5 if five_axis else 4)

    return PerformanceResult(
        profiles=profiles,
        axis_count=5 if five_axis else 4,
        axis_max=axis_max,
        id_to_name=id_to_name,
        name_to_id=name_to_id,
    )
