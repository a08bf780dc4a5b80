# Pydantic Schemas for engine results
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict
from enum import Enum


# Enums
class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CustomerGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    N = "N"  # no transaction in the period

    @property
    def order(self) -> int:
        return GRADE_ORDER[self]


GRADE_ORDER: Dict[CustomerGrade, int] = {
    CustomerGrade.A: 4,
    CustomerGrade.B: 3,
    CustomerGrade.C: 2,
    CustomerGrade.D: 1,
    CustomerGrade.N: 0,
}


class RfmSegment(str, Enum):
    VIP = "VIP"
    LOYAL = "Loyal"
    POTENTIAL = "Potential"
    AT_RISK = "At-risk"
    DORMANT = "Dormant"
    LOST = "Lost"


class InsightSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    NEUTRAL = "neutral"
    POSITIVE = "positive"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class Result(BaseModel):
    model_config = ConfigDict(frozen=True)


# Concentration
class ShareItem(Result):
    key: str
    name: str
    amount: float
    share: float  # fraction of the entity total


class ConcentrationResult(Result):
    hhi: float
    risk_level: RiskLevel
    top_share: float
    count: int
    items: List[ShareItem] = Field(default_factory=list)


# Performance scoring
class PerformanceScore(Result):
    sales_score: float
    order_score: float
    profit_score: float
    collection_score: float
    receivable_score: float
    total_score: float
    rank: int
    percentile: float


class PerformanceProfile(Result):
    id: str
    name: str
    org: str
    score: PerformanceScore
    sales_amount: float
    order_amount: float
    collection_amount: float
    collection_rate: float
    contribution_margin_rate: float
    receivable_health: Optional[float] = None
    customer_count: int
    product_count: int
    hhi: float
    hhi_risk_level: RiskLevel
    top_customer_share: float
    top_customers: List[ShareItem] = Field(default_factory=list)


class AxisWeights(Result):
    sales: float
    orders: float
    margin: float
    collection: float
    receivable: float


class PerformanceResult(Result):
    profiles: List[PerformanceProfile]
    axis_count: int
    axis_max: AxisWeights
    id_to_name: Dict[str, str] = Field(default_factory=dict)
    name_to_id: Dict[str, str] = Field(default_factory=dict)


# RFM
class RfmScore(Result):
    customer: str
    customer_name: str
    recency: int
    frequency: int
    monetary: float
    r_score: int
    f_score: int
    m_score: int
    total_score: int
    segment: RfmSegment


class RfmSegmentSummary(Result):
    segment: RfmSegment
    count: int
    total_sales: float
    avg_sales: float
    share: float


# CLV
class ClvResult(Result):
    customer: str
    customer_name: str
    transaction_count: int
    avg_transaction_value: float
    annual_frequency: float
    customer_value: float
    margin_rate: float
    tenure_years: float
    clv: float
    current_sales: float
    clv_to_sales_ratio: float


class ClvSummary(Result):
    total_clv: float
    avg_clv: float
    top_customer_clv: float
    customer_count: int


# Migration
class GradeThresholds(Result):
    A: float
    B: float
    C: float


class MigrationFlow(Result):
    from_grade: CustomerGrade
    to_grade: CustomerGrade
    count: int
    customers: List[str]


class MigrationMatrix(Result):
    month: str
    previous_month: str
    flows: List[MigrationFlow]


class MigrationSummary(Result):
    month: str
    previous_month: str
    upgraded: int
    maintained: int
    downgraded: int
    churned: int
    new_customers: int
    total_active: int


class GradeDistribution(Result):
    month: str
    A: int
    B: int
    C: int
    D: int


class MigrationResult(Result):
    matrices: List[MigrationMatrix]
    summaries: List[MigrationSummary]
    thresholds: GradeThresholds
    distribution: List[GradeDistribution] = Field(default_factory=list)


# Rep profiling
class Momentum(str, Enum):
    ACCELERATING = "accelerating"
    STABLE = "stable"
    DECELERATING = "decelerating"


class MonthlyActivity(Result):
    month: str
    sales: float = 0.0
    orders: float = 0.0
    collections: float = 0.0


class RepTrend(Result):
    person_id: str
    name: str
    monthly: List[MonthlyActivity] = Field(default_factory=list)
    avg_monthly_sales: float
    avg_monthly_orders: float
    avg_monthly_collections: float
    sales_mom: float  # fraction, last month vs the one before
    momentum: Momentum


class ProductPortfolioItem(Result):
    product: str
    name: str
    group: str
    sales: float
    gross_profit: float
    margin_rate: float  # fraction of sales
    share: float  # fraction of the rep's sales


class RepProductPortfolio(Result):
    person_id: str
    products: List[ProductPortfolioItem] = Field(default_factory=list)
    top_products: List[ProductPortfolioItem] = Field(default_factory=list)
    hhi: float
    avg_margin: float
    total_products: int
    total_product_groups: int


class CostEfficiency(Result):
    # cost rates are fractions of actual sales
    person_id: str
    org: str
    sales_amount: float
    raw_material_rate: float
    purchase_rate: float
    outsourcing_rate: float
    mfg_variable_cost_rate: float
    variable_cost_rate: float
    fixed_cost_rate: float
    contribution_margin_rate: float  # percent, as exported
    operating_margin_rate: float  # percent, as exported


# Variance
class VarianceItem(Result):
    org: str
    customer: str
    product: str
    plan_qty: float
    actual_qty: float
    plan_amount: float
    actual_amount: float
    plan_price: Decimal
    actual_price: Decimal
    total_variance: Decimal
    price_variance: Decimal
    volume_variance: Decimal
    mix_variance: Decimal


class VarianceSummary(Result):
    total_variance: Decimal
    price_variance: Decimal
    volume_variance: Decimal
    mix_variance: Decimal
    item_count: int


class OrgVarianceSummary(Result):
    org: str
    total_variance: Decimal
    price_variance: Decimal
    volume_variance: Decimal
    mix_variance: Decimal


# KPIs and trend
class OverviewKpis(Result):
    total_sales: float
    total_orders: float
    total_collection: float
    collection_rate: float
    total_receivables: float
    operating_profit_rate: Optional[float] = None
    sales_plan_achievement: Optional[float] = None


class ForecastPoint(Result):
    month: str
    actual: Optional[float] = None
    moving_avg_3: Optional[float] = None
    moving_avg_6: Optional[float] = None
    forecast: Optional[float] = None
    upper_bound: Optional[float] = None
    lower_bound: Optional[float] = None


class ForecastStats(Result):
    slope: float
    intercept: float
    r2: float
    trend: TrendDirection
    avg_growth_rate: float  # fraction, month over month


# Insights
class Insight(Result):
    id: str
    title: str
    message: str
    severity: InsightSeverity
    category: str
    metric: Optional[str] = None
    value: Optional[float] = None


class AnalysisReport(Result):
    kpis: OverviewKpis
    performance: PerformanceResult
    rfm: List[RfmScore]
    rfm_segments: List[RfmSegmentSummary]
    clv: List[ClvResult]
    clv_summary: ClvSummary
    migration: MigrationResult
    org_concentration: ConcentrationResult
    variance: List[VarianceItem]
    variance_summary: VarianceSummary
    org_variance: List[OrgVarianceSummary]
    forecast: List[ForecastPoint]
    forecast_stats: ForecastStats
    insights: List[Insight]
    org_ranking: List[ShareItem] = Field(default_factory=list)
    top_customers: List[ShareItem] = Field(default_factory=list)
    rep_trends: List[RepTrend] = Field(default_factory=list)
    rep_portfolios: List[RepProductPortfolio] = Field(default_factory=list)
    cost_efficiency: List[CostEfficiency] = Field(default_factory=list)
