# L8: Rule Engine - Threshold rules over engine outputs
from typing import Dict, Any, List, Callable, Optional, Sequence, Tuple
from dataclasses import dataclass
import structlog

from salesperf.layers.l7_analytics.kpi import calc_change_rate
from salesperf.models.schemas.schemas import (
    ClvSummary, ConcentrationResult, ForecastPoint, ForecastStats, Insight, InsightSeverity,
    MigrationResult, OverviewKpis, PerformanceResult, RfmSegment,
    RfmSegmentSummary, RiskLevel, TrendDirection, VarianceSummary
)

logger = structlog.get_logger()


@dataclass
class Rule:
    """Business rule definition."""
    id: str
    title: str
    severity: InsightSeverity
    category: str  # sales, collection, profitability, customers, concentration
    requires: Tuple[str, ...]
    condition: Callable[[Dict[str, Any]], bool]
    message_template: str
    metric: Optional[str] = None


SEVERITY_ORDER = {
    InsightSeverity.CRITICAL: 0,
    InsightSeverity.WARNING: 1,
    InsightSeverity.NEUTRAL: 2,
    InsightSeverity.POSITIVE: 3,
}


RULES: List[Rule] = [
    Rule(
        id="col-low",
        title="Collection rate below target",
        severity=InsightSeverity.CRITICAL,
        category="collection",
        requires=("collection_rate", "total_sales"),
        condition=lambda m: m["total_sales"] > 0 and m["collection_rate"] < 0.70,
        message_template="Collection rate is {collection_rate:.1%}, under the 70% target. Focus on overdue accounts.",
        metric="collection_rate",
    ),
    Rule(
        id="col-med",
        title="Collection rate needs attention",
        severity=InsightSeverity.WARNING,
        category="collection",
        requires=("collection_rate", "total_sales"),
        condition=lambda m: m["total_sales"] > 0 and 0.70 <= m["collection_rate"] < 0.85,
        message_template="Collection rate is {collection_rate:.1%}; there is room to improve.",
        metric="collection_rate",
    ),
    Rule(
        id="col-high",
        title="Strong collection rate",
        severity=InsightSeverity.POSITIVE,
        category="collection",
        requires=("collection_rate", "total_sales"),
        condition=lambda m: m["total_sales"] > 0 and m["collection_rate"] >= 0.95,
        message_template="Collection rate is {collection_rate:.1%}.",
        metric="collection_rate",
    ),
    Rule(
        id="op-neg",
        title="Operating loss",
        severity=InsightSeverity.CRITICAL,
        category="profitability",
        requires=("operating_profit_rate",),
        condition=lambda m: m["operating_profit_rate"] < 0,
        message_template="Operating margin is {operating_profit_rate:.1%}. The cost structure needs review.",
        metric="operating_profit_rate",
    ),
    Rule(
        id="op-low",
        title="Thin operating margin",
        severity=InsightSeverity.WARNING,
        category="profitability",
        requires=("operating_profit_rate",),
        condition=lambda m: 0 <= m["operating_profit_rate"] < 0.05,
        message_template="Operating margin is {operating_profit_rate:.1%}. Consider cost cuts or a richer product mix.",
        metric="operating_profit_rate",
    ),
    Rule(
        id="op-high",
        title="Healthy operating margin",
        severity=InsightSeverity.POSITIVE,
        category="profitability",
        requires=("operating_profit_rate",),
        condition=lambda m: m["operating_profit_rate"] >= 0.10,
        message_template="Operating margin is {operating_profit_rate:.1%}.",
        metric="operating_profit_rate",
    ),
    Rule(
        id="plan-low",
        title="Sales plan shortfall",
        severity=InsightSeverity.WARNING,
        category="sales",
        requires=("sales_plan_achievement",),
        condition=lambda m: m["sales_plan_achievement"] < 0.80,
        message_template="Sales plan achievement is {sales_plan_achievement:.1%}, below 80%.",
        metric="sales_plan_achievement",
    ),
    Rule(
        id="plan-over",
        title="Sales plan exceeded",
        severity=InsightSeverity.POSITIVE,
        category="sales",
        requires=("sales_plan_achievement",),
        condition=lambda m: m["sales_plan_achievement"] >= 1.0,
        message_template="Sales plan achievement is {sales_plan_achievement:.1%}.",
        metric="sales_plan_achievement",
    ),
    Rule(
        id="negative-margin-orgs",
        title="Organizations selling at a loss",
        severity=InsightSeverity.CRITICAL,
        category="profitability",
        requires=("negative_margin_orgs",),
        condition=lambda m: m["negative_margin_orgs"] > 0,
        message_template="{negative_margin_orgs} organization(s) run at a negative gross margin.",
        metric="negative_margin_orgs",
    ),
    Rule(
        id="org-concentration",
        title="Revenue concentrated in few organizations",
        severity=InsightSeverity.WARNING,
        category="concentration",
        requires=("org_hhi", "org_count", "top_org", "top_org_share"),
        condition=lambda m: m["org_count"] > 1 and m["org_hhi"] > 0.25,
        message_template="Organization HHI is {org_hhi:.2f}; {top_org} alone brings {top_org_share:.0%} of sales.",
        metric="org_hhi",
    ),
    Rule(
        id="rep-concentration",
        title="Reps dependent on few customers",
        severity=InsightSeverity.WARNING,
        category="concentration",
        requires=("high_concentration_reps", "rep_count"),
        condition=lambda m: m["high_concentration_reps"] > 0,
        message_template="{high_concentration_reps} of {rep_count} reps have a customer HHI above 0.25.",
        metric="high_concentration_reps",
    ),
    Rule(
        id="churn-exceeds-new",
        title="More customers lost than won",
        severity=InsightSeverity.WARNING,
        category="customers",
        requires=("latest_churned", "latest_new", "latest_month"),
        condition=lambda m: m["latest_churned"] > m["latest_new"],
        message_template="In {latest_month}, {latest_churned} customers stopped buying while {latest_new} started.",
        metric="latest_churned",
    ),
    Rule(
        id="at-risk-share",
        title="Large at-risk customer group",
        severity=InsightSeverity.WARNING,
        category="customers",
        requires=("at_risk_share",),
        condition=lambda m: m["at_risk_share"] >= 0.20,
        message_template="At-risk customers hold {at_risk_share:.1%} of sales. Start a retention campaign.",
        metric="at_risk_share",
    ),
    Rule(
        id="vip-share",
        title="VIP customers carry the business",
        severity=InsightSeverity.NEUTRAL,
        category="customers",
        requires=("vip_share",),
        condition=lambda m: m["vip_share"] >= 0.50,
        message_template="VIP customers account for {vip_share:.1%} of sales.",
        metric="vip_share",
    ),
    Rule(
        id="price-erosion",
        title="Price erosion against plan",
        severity=InsightSeverity.WARNING,
        category="profitability",
        requires=("price_variance", "volume_variance"),
        condition=lambda m: m["price_variance"] < 0 and abs(m["price_variance"]) >= abs(m["volume_variance"]),
        message_template="Price variance of {price_variance:,.0f} is the largest drag on plan.",
        metric="price_variance",
    ),
    Rule(
        id="volume-shortfall",
        title="Volume shortfall against plan",
        severity=InsightSeverity.WARNING,
        category="sales",
        requires=("price_variance", "volume_variance"),
        condition=lambda m: m["volume_variance"] < 0 and abs(m["volume_variance"]) > abs(m["price_variance"]),
        message_template="Volume variance of {volume_variance:,.0f} is the largest drag on plan.",
        metric="volume_variance",
    ),
    Rule(
        id="sales-drop",
        title="Sharp monthly sales drop",
        severity=InsightSeverity.WARNING,
        category="sales",
        requires=("last_month_change", "latest_sales_month"),
        condition=lambda m: m["last_month_change"] <= -0.20,
        message_template="Sales in {latest_sales_month} changed {last_month_change:+.1%} against the previous month.",
        metric="last_month_change",
    ),
    Rule(
        id="trend-down",
        title="Sales trending down",
        severity=InsightSeverity.WARNING,
        category="sales",
        requires=("sales_trend", "avg_growth_rate"),
        condition=lambda m: m["sales_trend"] == TrendDirection.DOWN,
        message_template="Monthly sales are on a downward trend (average change {avg_growth_rate:+.1%} per month).",
        metric="avg_growth_rate",
    ),
    Rule(
        id="trend-up",
        title="Sales trending up",
        severity=InsightSeverity.POSITIVE,
        category="sales",
        requires=("sales_trend", "avg_growth_rate"),
        condition=lambda m: m["sales_trend"] == TrendDirection.UP,
        message_template="Monthly sales are on an upward trend (average change {avg_growth_rate:+.1%} per month).",
        metric="avg_growth_rate",
    ),
]


def _segment_share(segments: Sequence[RfmSegmentSummary], segment: RfmSegment) -> Optional[float]:
    if not segments:
        return None
    return next((s.share for s in segments if s.segment == segment), 0.0)


def build_metrics(
    kpis: Optional[OverviewKpis] = None,
    performance: Optional[PerformanceResult] = None,
    rfm_segments: Sequence[RfmSegmentSummary] = (),
    migration: Optional[MigrationResult] = None,
    org_concentration: Optional[ConcentrationResult] = None,
    variance_summary: Optional[VarianceSummary] = None,
    forecast_stats: Optional[ForecastStats] = None,
    clv_summary: Optional[ClvSummary] = None,
    org_margins: Optional[Dict[str, float]] = None,
    forecast: Sequence[ForecastPoint] = ()
) -> Dict[str, Any]:
    """
    Flatten engine outputs into the metric names rules refer to.
    A metric is None when the data behind it was not supplied.
    """
    metrics: Dict[str, Any] = {
        "total_sales": kpis.total_sales if kpis else None,
        "collection_rate": kpis.collection_rate if kpis else None,
        "operating_profit_rate": kpis.operating_profit_rate if kpis else None,
        "sales_plan_achievement": kpis.sales_plan_achievement if kpis else None,
        "rep_count": None,
        "high_concentration_reps": None,
        "org_hhi": None,
        "org_count": None,
        "top_org": None,
        "top_org_share": None,
        "latest_month": None,
        "latest_churned": None,
        "latest_new": None,
        "at_risk_share": _segment_share(rfm_segments, RfmSegment.AT_RISK),
        "vip_share": _segment_share(rfm_segments, RfmSegment.VIP),
        "price_variance": None,
        "volume_variance": None,
        "sales_trend": forecast_stats.trend if forecast_stats else None,
        "avg_growth_rate": forecast_stats.avg_growth_rate if forecast_stats else None,
        "total_clv": clv_summary.total_clv if clv_summary else None,
        "negative_margin_orgs": (
            sum(1 for rate in org_margins.values() if rate < 0) if org_margins else None
        ),
        "latest_sales_month": None,
        "last_month_change": None,
    }

    if performance and performance.profiles:
        metrics["rep_count"] = len(performance.profiles)
        metrics["high_concentration_reps"] = sum(
            1 for p in performance.profiles if p.hhi_risk_level == RiskLevel.HIGH
        )

    if org_concentration and org_concentration.items:
        metrics["org_hhi"] = org_concentration.hhi
        metrics["org_count"] = org_concentration.count
        metrics["top_org"] = org_concentration.items[0].name
        metrics["top_org_share"] = org_concentration.top_share

    if migration and migration.summaries:
        latest = migration.summaries[-1]
        metrics["latest_month"] = latest.month
        metrics["latest_churned"] = latest.churned
        metrics["latest_new"] = latest.new_customers

    actuals = [p for p in forecast if p.actual is not None]
    if len(actuals) >= 2:
        metrics["latest_sales_month"] = actuals[-1].month
        metrics["last_month_change"] = calc_change_rate(actuals[-1].actual, actuals[-2].actual)

    if variance_summary and variance_summary.item_count > 0:
        metrics["price_variance"] = float(variance_summary.price_variance)
        metrics["volume_variance"] = float(variance_summary.volume_variance)

    return metrics


def evaluate_rules(
    metrics: Dict[str, Any],
    rules: Sequence[Rule] = RULES
) -> List[Insight]:
    """
    Evaluate every rule whose inputs are available.
    Returns triggered insights, most severe first.
    """
    insights = []
    for rule in rules:
        if any(metrics.get(name) is None for name in rule.requires):
            continue
        if rule.condition(metrics):
            insights.append(create_insight(rule, metrics))

    insights.sort(key=lambda insight: SEVERITY_ORDER[insight.severity])
    logger.info("Insight rules evaluated", rules=len(rules), triggered=len(insights))
    return insights


def create_insight(rule: Rule, metrics: Dict[str, Any]) -> Insight:
    """Create an insight from a triggered rule."""
    value = metrics.get(rule.metric) if rule.metric else None
    return Insight(
        id=rule.id,
        title=rule.title,
        message=rule.message_template.format(**metrics),
        severity=rule.severity,
        category=rule.category,
        metric=rule.metric,
        value=float(value) if value is not None else None,
    )
