# L7: Analytics Layer - RFM customer segmentation
import math
import numpy as np
from typing import Dict, List, Optional, Sequence
import structlog

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.dates import month_distance
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import (
    of_kind, sum_by, count_by, last_label_by, latest_month
)
from salesperf.models.schemas.records import SaleRecord
from salesperf.models.schemas.schemas import RfmScore, RfmSegment, RfmSegmentSummary

logger = structlog.get_logger()

SEGMENT_ORDER = [
    RfmSegment.VIP,
    RfmSegment.LOYAL,
    RfmSegment.POTENTIAL,
    RfmSegment.AT_RISK,
    RfmSegment.DORMANT,
    RfmSegment.LOST,
]

SEGMENT_ACTIONS: Dict[RfmSegment, Dict[str, str]] = {
    RfmSegment.VIP: {
        "action": "Keep VIP benefits",
        "description": "Dedicated account service and priority support to prevent churn",
        "priority": "high",
    },
    RfmSegment.LOYAL: {
        "action": "Cross-sell and up-sell",
        "description": "Propose adjacent product lines and larger order volumes",
        "priority": "high",
    },
    RfmSegment.POTENTIAL: {
        "action": "Nurture program",
        "description": "Regular visits and samples to raise purchase frequency",
        "priority": "medium",
    },
    RfmSegment.AT_RISK: {
        "action": "Urgent retention campaign",
        "description": "Offer special terms and find out why orders stopped",
        "priority": "high",
    },
    RfmSegment.DORMANT: {
        "action": "Reactivation campaign",
        "description": "Time-limited promotion to trigger a repeat purchase",
        "priority": "medium",
    },
    RfmSegment.LOST: {
        "action": "Analyse and re-approach selectively",
        "description": "Work out churn causes, re-approach only high-ROI accounts",
        "priority": "low",
    },
}


def quintile_scores(values: Sequence[float], invert: bool = False) -> List[int]:
    """
    Rank-based 1-5 scores in input order (5 = highest value).

    Ties are broken by input position. Populations under five are spread
    evenly over the scale: n=1 -> [3], n=2 -> [1, 5], n=3 -> [1, 3, 5],
    n=4 -> [1, 2, 4, 5]. With invert=True the lowest value scores 5.
    """
    n = len(values)
    scores = [0] * n
    if n == 0:
        return scores

    order = np.argsort(np.asarray(values, dtype=float), kind="stable")
    for position, index in enumerate(order):
        if n == 1:
            raw = 3
        elif n < 5:
            raw = int(math.floor(1 + position / (n - 1) * 4 + 0.5))
        else:
            raw = min(5, int(math.floor(position / n * 5)) + 1)
        scores[int(index)] = 6 - raw if invert else raw
    return scores


def classify_segment(r: int, f: int, m: int) -> RfmSegment:
    """
    Decision table, first match wins:

        R>=4 and F>=4 and M>=4  -> VIP
        R<=2 and F>=3 and M>=3  -> At-risk
        F>=3 and M>=3           -> Loyal
        R>=3                    -> Potential
        F<=2 and M<=2           -> Lost      (R<=2 here)
        otherwise               -> Dormant   (R<=2 here)
    """
    if r >= 4 and f >= 4 and m >= 4:
        return RfmSegment.VIP
    if r <= 2 and f >= 3 and m >= 3:
        return RfmSegment.AT_RISK
    if f >= 3 and m >= 3:
        return RfmSegment.LOYAL
    if r >= 3:
        return RfmSegment.POTENTIAL
    if f <= 2 and m <= 2:
        return RfmSegment.LOST
    return RfmSegment.DORMANT


def calc_rfm_scores(
    sales: Sequence[SaleRecord],
    settings: Optional[Settings] = None
) -> List[RfmScore]:
    """
    Score every customer on recency, frequency and monetary value.

    "Now" is the latest month in the data, not the wall clock, so the
    result depends only on the records passed in.
    """
    settings = settings or get_settings()
    df = of_kind(records_to_frame(sales), "sale")
    df = df[df["customer"] != ""]
    if df.empty:
        return []

    now = latest_month(df)
    if now is None:
        return []

    monetary = sum_by(df, "customer")
    frequency = count_by(df, "customer")
    last_month = {
        str(k): str(v)
        for k, v in df[df["month"].notna()].groupby("customer", sort=False)["month"].max().items()
    }
    names = last_label_by(df, "customer", "customer_name")

    customers = list(monetary)
    recency = [
        month_distance(last_month[c], now) if c in last_month else settings.RFM_NO_RECENCY_MONTHS
        for c in customers
    ]
    r_scores = quintile_scores(recency, invert=True)
    f_scores = quintile_scores([frequency[c] for c in customers])
    m_scores = quintile_scores([monetary[c] for c in customers])

    results = []
    for i, customer in enumerate(customers):
        r, f, m = r_scores[i], f_scores[i], m_scores[i]
        results.append(RfmScore(
            customer=customer,
            customer_name=names.get(customer, ""),
            recency=recency[i],
            frequency=frequency[customer],
            monetary=monetary[customer],
            r_score=r,
            f_score=f,
            m_score=m,
            total_score=r + f + m,
            segment=classify_segment(r, f, m),
        ))

    results.sort(key=lambda s: (-s.total_score, -s.monetary))
    logger.info("RFM scoring complete", customers=len(results), reference_month=now)
    return results


def calc_rfm_segment_summary(scores: Sequence[RfmScore]) -> List[RfmSegmentSummary]:
    """Customer count, sales and share of sales per segment."""
    if not scores:
        return []

    grouped: Dict[RfmSegment, List[float]] = {}
    for s in scores:
        grouped.setdefault(s.segment, []).append(s.monetary)
    grand_total = sum(s.monetary for s in scores)

    return [
        RfmSegmentSummary(
            segment=segment,
            count=len(grouped[segment]),
            total_sales=sum(grouped[segment]),
            avg_sales=sum(grouped[segment]) / len(grouped[segment]),
            share=sum(grouped[segment]) / grand_total if grand_total > 0 else 0.0,
        )
        for segment in SEGMENT_ORDER
        if segment in grouped
    ]


def segment_action(segment: RfmSegment) -> Dict[str, str]:
    return SEGMENT_ACTIONS.get(segment, {
        "action": "Monitor",
        "description": "Track transaction activity regularly",
        "priority": "low",
    })
