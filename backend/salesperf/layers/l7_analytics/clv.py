# L7: Analytics Layer - Customer lifetime value
from typing import Dict, List, Optional, Sequence, Tuple
import structlog

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.dates import month_span_years
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import (
    of_kind, sum_by, count_by, last_label_by, first_label_by, months_in
)
from salesperf.models.schemas.records import SaleRecord, OrgProfitRecord
from salesperf.models.schemas.schemas import ClvResult, ClvSummary

logger = structlog.get_logger()


def _clamp_margin(margin: float, settings: Settings) -> float:
    return max(settings.CLV_MARGIN_FLOOR, min(margin, settings.CLV_MARGIN_CEILING))


def calc_margin_rates(
    org_profit: Sequence[OrgProfitRecord],
    settings: Optional[Settings] = None
) -> Tuple[Dict[str, float], float]:
    """
    Gross margin per organization plus the weighted margin over all of them.
    The overall rate falls back to CLV_DEFAULT_MARGIN when there is no usable
    profit data.
    """
    settings = settings or get_settings()
    per_org: Dict[str, List[float]] = {}
    for r in org_profit:
        entry = per_org.setdefault((r.org or "").strip(), [0.0, 0.0])
        entry[0] += r.sales.actual
        entry[1] += r.gross_profit.actual

    org_rates = {
        org: _clamp_margin(gross / sales, settings)
        for org, (sales, gross) in per_org.items()
        if org and sales > 0
    }
    total_sales = sum(sales for sales, _ in per_org.values())
    total_gross = sum(gross for _, gross in per_org.values())
    overall = (
        _clamp_margin(total_gross / total_sales, settings)
        if total_sales > 0 else settings.CLV_DEFAULT_MARGIN
    )
    return org_rates, overall


def calc_clv(
    sales: Sequence[SaleRecord],
    org_profit: Sequence[OrgProfitRecord] = (),
    years_in_data: Optional[float] = None,
    settings: Optional[Settings] = None
) -> List[ClvResult]:
    """
    CLV = average transaction value x annual frequency x margin rate x tenure.

    Customers with fewer than two transactions are left out: one data point
    says nothing about purchase frequency.
    """
    settings = settings or get_settings()
    df = of_kind(records_to_frame(sales), "sale")
    df = df[df["customer"] != ""]
    if df.empty:
        return []

    years = years_in_data if years_in_data and years_in_data > 0 else month_span_years(months_in(df))
    org_rates, overall_margin = calc_margin_rates(org_profit, settings)

    totals = sum_by(df, "customer")
    counts = count_by(df, "customer")
    names = last_label_by(df, "customer", "customer_name")
    customer_orgs = first_label_by(df, "customer", "org")

    frequencies = {c: counts[c] / years for c in totals}
    avg_frequency = sum(frequencies.values()) / len(frequencies)

    results = []
    for customer, total in totals.items():
        count = counts[customer]
        if count < 2:
            continue

        avg_value = total / count
        frequency = frequencies[customer]
        margin = org_rates.get(customer_orgs.get(customer, ""), overall_margin)

        tenure = settings.CLV_LIFETIME_YEARS
        if settings.CLV_RETENTION_ADJUSTED and avg_frequency > 0:
            # frequent buyers are assumed to stay longer, floor at 20% of base
            tenure *= min(1.0, frequency / avg_frequency) * 0.8 + 0.2

        customer_value = avg_value * frequency
        clv = customer_value * margin * tenure
        results.append(ClvResult(
            customer=customer,
            customer_name=names.get(customer, ""),
            transaction_count=count,
            avg_transaction_value=avg_value,
            annual_frequency=frequency,
            customer_value=customer_value,
            margin_rate=margin,
            tenure_years=tenure,
            clv=clv,
            current_sales=total,
            clv_to_sales_ratio=clv / total if total > 0 else 0.0,
        ))

    results.sort(key=lambda r: r.clv, reverse=True)
    logger.info(
        "CLV estimation complete",
        customers=len(results),
        omitted=len(totals) - len(results),
        years=round(years, 3)
    )
    return results


def calc_clv_summary(results: Sequence[ClvResult]) -> ClvSummary:
    if not results:
        return ClvSummary(total_clv=0.0, avg_clv=0.0, top_customer_clv=0.0, customer_count=0)
    total = sum(r.clv for r in results)
    return ClvSummary(
        total_clv=total,
        avg_clv=total / len(results),
        top_customer_clv=max(r.clv for r in results),
        customer_count=len(results),
    )
