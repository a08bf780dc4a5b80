# Pipeline Service - Orchestrates the full analysis over one filtered dataset
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import structlog

from salesperf.config import Settings, get_settings
from salesperf.core.exceptions import InvalidRecordException
from salesperf.layers.l1_ingestion.parser import parse_records, records_to_frame
from salesperf.layers.l7_analytics.clv import calc_clv, calc_clv_summary, calc_margin_rates
from salesperf.layers.l7_analytics.concentration import org_concentration
from salesperf.layers.l7_analytics.forecast import calc_sales_forecast
from salesperf.layers.l7_analytics.kpi import calc_overview_kpis, calc_org_ranking, calc_top_customers
from salesperf.layers.l7_analytics.migration import calc_customer_migration
from salesperf.layers.l7_analytics.profiling import (
    calc_cost_efficiency, calc_rep_product_portfolio, calc_rep_trends
)
from salesperf.layers.l7_analytics.rfm import calc_rfm_scores, calc_rfm_segment_summary
from salesperf.layers.l7_analytics.scoring import ScoringWeights, calc_performance_scores
from salesperf.layers.l7_analytics.variance import (
    calc_variance_analysis, calc_variance_summary, calc_org_variance_summaries
)
from salesperf.layers.l8_rules.engine import build_metrics, evaluate_rules
from salesperf.models.schemas.records import (
    BaseRecord, SaleRecord, OrderRecord, CollectionRecord, TeamContributionRecord,
    OrgProfitRecord, ReceivableAgingRecord, ProfitabilityRecord
)
from salesperf.models.schemas.schemas import AnalysisReport

logger = structlog.get_logger()


@dataclass
class AnalysisInput:
    """All record lists for one analysis run, already filtered by the caller."""
    sales: List[SaleRecord] = field(default_factory=list)
    orders: List[OrderRecord] = field(default_factory=list)
    collections: List[CollectionRecord] = field(default_factory=list)
    team_contributions: List[TeamContributionRecord] = field(default_factory=list)
    org_profit: List[OrgProfitRecord] = field(default_factory=list)
    receivable_aging: List[ReceivableAgingRecord] = field(default_factory=list)
    profitability: List[ProfitabilityRecord] = field(default_factory=list)
    weights: Optional[ScoringWeights] = None

    @classmethod
    def from_records(
        cls,
        records: Iterable[BaseRecord],
        weights: Optional[ScoringWeights] = None
    ) -> "AnalysisInput":
        """Split a mixed list of record variants into per-kind lists."""
        bundle = cls(weights=weights)
        targets = {
            "sale": bundle.sales,
            "order": bundle.orders,
            "collection": bundle.collections,
            "team_contribution": bundle.team_contributions,
            "org_profit": bundle.org_profit,
            "receivable_aging": bundle.receivable_aging,
            "profitability": bundle.profitability,
        }
        for record in records:
            target = targets.get(getattr(record, "kind", None))
            if target is None or not isinstance(record, BaseRecord):
                raise InvalidRecordException(
                    f"Expected a record variant, got {type(record).__name__}"
                )
            target.append(record)
        return bundle

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Dict[str, Any]],
        weights: Optional[ScoringWeights] = None
    ) -> "AnalysisInput":
        """Validate raw dicts carrying a `kind` and bundle them."""
        return cls.from_records(parse_records(rows), weights=weights)


def run_analysis(
    data: AnalysisInput,
    settings: Optional[Settings] = None
) -> AnalysisReport:
    """
    Run every analytics component over one dataset and evaluate the
    insight rules on the results.
    """
    settings = settings or get_settings()
    logger.info(
        "Analysis started",
        sales=len(data.sales),
        orders=len(data.orders),
        collections=len(data.collections),
        aging=len(data.receivable_aging),
        profitability=len(data.profitability)
    )

    kpis = calc_overview_kpis(data.sales, data.orders, data.collections, data.org_profit)

    performance = calc_performance_scores(
        data.sales,
        orders=data.orders,
        collections=data.collections,
        team_contributions=data.team_contributions,
        aging=data.receivable_aging or None,
        weights=data.weights,
        settings=settings,
    )

    rfm = calc_rfm_scores(data.sales, settings)
    rfm_segments = calc_rfm_segment_summary(rfm)

    clv = calc_clv(data.sales, data.org_profit, settings=settings)
    clv_summary = calc_clv_summary(clv)

    migration = calc_customer_migration(data.sales, settings)
    org_conc = org_concentration(records_to_frame(data.sales), settings)

    variance = calc_variance_analysis(data.profitability)
    variance_summary = calc_variance_summary(variance)
    org_variance = calc_org_variance_summaries(variance)

    forecast, forecast_stats = calc_sales_forecast(data.sales, settings=settings)

    rep_trends = calc_rep_trends(data.sales, data.orders, data.collections, settings)
    rep_portfolios = [
        portfolio for portfolio in (
            calc_rep_product_portfolio(data.profitability, p.id, p.name, settings)
            for p in performance.profiles
        )
        if portfolio
    ]
    cost_efficiency = calc_cost_efficiency(data.team_contributions, performance.name_to_id)

    org_margins = calc_margin_rates(data.org_profit, settings)[0] if data.org_profit else None
    metrics = build_metrics(
        kpis=kpis,
        performance=performance,
        rfm_segments=rfm_segments,
        migration=migration,
        org_concentration=org_conc,
        variance_summary=variance_summary,
        forecast_stats=forecast_stats,
        clv_summary=clv_summary,
        org_margins=org_margins,
        forecast=forecast,
    )
    insights = evaluate_rules(metrics)

    logger.info(
        "Analysis complete",
        reps=len(performance.profiles),
        customers=len(rfm),
        insights=len(insights)
    )

    return AnalysisReport(
        kpis=kpis,
        performance=performance,
        rfm=rfm,
        rfm_segments=rfm_segments,
        clv=clv,
        clv_summary=clv_summary,
        migration=migration,
        org_concentration=org_conc,
        variance=variance,
        variance_summary=variance_summary,
        org_variance=org_variance,
        forecast=forecast,
        forecast_stats=forecast_stats,
        insights=insights,
        org_ranking=calc_org_ranking(data.sales),
        top_customers=calc_top_customers(data.sales, settings=settings),
        rep_trends=rep_trends,
        rep_portfolios=rep_portfolios,
        cost_efficiency=cost_efficiency,
    )
