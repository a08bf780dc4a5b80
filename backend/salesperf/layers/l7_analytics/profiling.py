# L7: Analytics Layer - Per-rep profiling (trend, product mix, cost structure)
import pandas as pd
from typing import Dict, List, Optional, Sequence
import structlog

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import of_kind, sum_by, first_label_by
from salesperf.layers.l7_analytics.concentration import hhi
from salesperf.layers.l7_analytics.kpi import monthly_activity
from salesperf.layers.l7_analytics.scoring import person_name_maps
from salesperf.models.schemas.records import (
    SaleRecord, OrderRecord, CollectionRecord, TeamContributionRecord, ProfitabilityRecord
)
from salesperf.models.schemas.schemas import (
    CostEfficiency, Momentum, ProductPortfolioItem, RepProductPortfolio, RepTrend
)

logger = structlog.get_logger()

OTHER = "(other)"


def _activity_frame(
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord],
    collections: Sequence[CollectionRecord]
) -> pd.DataFrame:
    """Mixed frame with collection persons resolved from names to ids."""
    frame = records_to_frame(list(sales) + list(orders) + list(collections))
    _, name_to_id = person_name_maps(frame)
    is_collection = frame["kind"] == "collection"
    frame.loc[is_collection, "person"] = frame.loc[is_collection, "person"].map(
        lambda key: name_to_id.get(key, key)
    )
    return frame


def momentum(sales: List[float], avg_sales: float, settings: Settings) -> Momentum:
    """
    Change across the last few months relative to the average month.
    Too short a history or no sales reads as stable.
    """
    window = settings.MOMENTUM_WINDOW
    if len(sales) < window or avg_sales <= 0:
        return Momentum.STABLE
    recent = sales[-window:]
    slope = (recent[-1] - recent[0]) / avg_sales
    if slope > settings.MOMENTUM_THRESHOLD:
        return Momentum.ACCELERATING
    if slope < -settings.MOMENTUM_THRESHOLD:
        return Momentum.DECELERATING
    return Momentum.STABLE


def _rep_trend(
    frame: pd.DataFrame,
    person_id: str,
    name: str,
    settings: Settings
) -> Optional[RepTrend]:
    rows = frame[frame["person"] == person_id]
    if of_kind(rows, "sale").empty and of_kind(rows, "order").empty:
        return None

    monthly = monthly_activity(rows)
    if not monthly:
        return None

    n = len(monthly)
    sales = [m.sales for m in monthly]
    avg_sales = sum(sales) / n

    sales_mom = 0.0
    if n >= 2 and sales[-2] > 0:
        sales_mom = (sales[-1] - sales[-2]) / sales[-2]

    return RepTrend(
        person_id=person_id,
        name=name or person_id,
        monthly=monthly,
        avg_monthly_sales=avg_sales,
        avg_monthly_orders=sum(m.orders for m in monthly) / n,
        avg_monthly_collections=sum(m.collections for m in monthly) / n,
        sales_mom=sales_mom,
        momentum=momentum(sales, avg_sales, settings),
    )


def calc_rep_trend(
    person_id: str,
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord] = (),
    collections: Sequence[CollectionRecord] = (),
    settings: Optional[Settings] = None
) -> Optional[RepTrend]:
    """
    Monthly sales, orders and collections for one rep.
    None when the rep has no sales or orders, or none of them is dated.
    """
    settings = settings or get_settings()
    frame = _activity_frame(sales, orders, collections)
    id_to_name, _ = person_name_maps(frame)
    names = first_label_by(of_kind(frame, "sale"), "person", "person_name")
    return _rep_trend(frame, person_id, names.get(person_id) or id_to_name.get(person_id, ""), settings)


def calc_rep_trends(
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord] = (),
    collections: Sequence[CollectionRecord] = (),
    settings: Optional[Settings] = None
) -> List[RepTrend]:
    """Trend for every rep with sales or orders, in first-seen order."""
    settings = settings or get_settings()
    frame = _activity_frame(sales, orders, collections)
    id_to_name, _ = person_name_maps(frame)
    names = first_label_by(of_kind(frame, "sale"), "person", "person_name")

    active = frame[frame["kind"].isin(["sale", "order"]) & (frame["person"] != "")]
    trends = []
    for person_id in dict.fromkeys(active["person"]):
        trend = _rep_trend(frame, person_id, names.get(person_id) or id_to_name.get(person_id, ""), settings)
        if trend:
            trends.append(trend)
    logger.info("Rep trends complete", reps=len(trends))
    return trends


def calc_rep_product_portfolio(
    rows: Sequence[ProfitabilityRecord],
    person_id: str,
    person_name: str = "",
    settings: Optional[Settings] = None
) -> Optional[RepProductPortfolio]:
    """
    Product mix of one rep from the profitability rows, largest product first.

    Rows may name the rep by id or by display name. Margin and share are
    fractions; the HHI is over product sales shares.
    """
    settings = settings or get_settings()
    keys = {person_id, person_name} - {""}
    mine = [r for r in rows if (r.person or "").strip() in keys]
    if not mine:
        return None

    df = pd.DataFrame([
        {
            "product": r.product_id.strip() or OTHER,
            "name": r.product_name.strip(),
            "group": r.product_group.strip() or OTHER,
            "sales": r.sales.actual,
            "gross_profit": r.gross_profit.actual,
        }
        for r in mine
    ])
    sales = sum_by(df, "product", "sales")
    gross_profit = sum_by(df, "product", "gross_profit")
    names = first_label_by(df, "product", "name")
    groups = first_label_by(df, "product", "group")

    total_sales = sum(sales.values())
    products = [
        ProductPortfolioItem(
            product=product,
            name=names.get(product) or product,
            group=groups.get(product, OTHER),
            sales=amount,
            gross_profit=gross_profit.get(product, 0.0),
            margin_rate=gross_profit.get(product, 0.0) / amount if amount > 0 else 0.0,
            share=amount / total_sales if total_sales > 0 else 0.0,
        )
        for product, amount in sales.items()
    ]
    products.sort(key=lambda item: item.sales, reverse=True)

    total_gp = sum(item.gross_profit for item in products)
    return RepProductPortfolio(
        person_id=person_id,
        products=products,
        top_products=products[:settings.TOP_PRODUCT_LIMIT],
        hhi=hhi(sales.values()),
        avg_margin=total_gp / total_sales if total_sales > 0 else 0.0,
        total_products=len(products),
        total_product_groups=len({item.group for item in products}),
    )


def calc_cost_efficiency(
    team_contributions: Sequence[TeamContributionRecord],
    name_to_id: Optional[Dict[str, str]] = None
) -> List[CostEfficiency]:
    """Cost lines as fractions of actual sales, one row per rep with sales."""
    name_to_id = name_to_id or {}
    results = []
    for r in team_contributions:
        amount = r.sales.actual
        if amount <= 0:
            continue
        person = (r.person or "").strip()
        results.append(CostEfficiency(
            person_id=name_to_id.get(person, person),
            org=r.org,
            sales_amount=amount,
            raw_material_rate=r.raw_material.actual / amount,
            purchase_rate=r.purchase.actual / amount,
            outsourcing_rate=r.outsourcing.actual / amount,
            mfg_variable_cost_rate=r.mfg_variable_cost.actual / amount,
            variable_cost_rate=r.sga_variable_cost.actual / amount,
            fixed_cost_rate=r.sga_fixed_cost.actual / amount,
            contribution_margin_rate=r.contribution_margin_rate.actual,
            operating_margin_rate=r.operating_margin_rate.actual,
        ))
    return results
