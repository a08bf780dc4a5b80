# L7: Analytics Layer - KPI Calculations
import pandas as pd
from typing import List, Optional, Sequence

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import of_kind, sum_by, sum_by_month, first_label_by
from salesperf.models.schemas.records import (
    SaleRecord, OrderRecord, CollectionRecord, OrgProfitRecord
)
from salesperf.models.schemas.schemas import MonthlyActivity, OverviewKpis, ShareItem


def calc_overview_kpis(
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord] = (),
    collections: Sequence[CollectionRecord] = (),
    org_profit: Sequence[OrgProfitRecord] = ()
) -> OverviewKpis:
    """
    Headline KPIs for the filtered dataset.
    Rates are fractions. Profit-based rates are None without org P&L rows,
    since there is nothing to compute them from.
    """
    total_sales = sum(r.amount for r in sales)
    total_orders = sum(r.amount for r in orders)
    total_collection = sum(r.amount for r in collections)

    operating_profit_rate = None
    sales_plan_achievement = None
    if org_profit:
        actual_sales = sum(r.sales.actual for r in org_profit)
        plan_sales = sum(r.sales.plan for r in org_profit)
        operating_profit = sum(r.operating_profit.actual for r in org_profit)
        operating_profit_rate = operating_profit / actual_sales if actual_sales > 0 else 0.0
        sales_plan_achievement = actual_sales / plan_sales if plan_sales > 0 else None

    return OverviewKpis(
        total_sales=total_sales,
        total_orders=total_orders,
        total_collection=total_collection,
        collection_rate=total_collection / total_sales if total_sales > 0 else 0.0,
        total_receivables=total_sales - total_collection,
        operating_profit_rate=operating_profit_rate,
        sales_plan_achievement=sales_plan_achievement,
    )


def calc_change_rate(current: float, previous: float) -> float:
    """Relative change as a fraction, measured against |previous|."""
    if previous == 0:
        return 1.0 if current > 0 else 0.0
    return (current - previous) / abs(previous)


def monthly_activity(df: pd.DataFrame) -> List[MonthlyActivity]:
    """Sales, orders and collections per month from one mixed frame."""
    sales = sum_by_month(of_kind(df, "sale"))
    orders = sum_by_month(of_kind(df, "order"))
    collections = sum_by_month(of_kind(df, "collection"))
    months = sorted(set(sales) | set(orders) | set(collections))
    return [
        MonthlyActivity(
            month=m,
            sales=sales.get(m, 0.0),
            orders=orders.get(m, 0.0),
            collections=collections.get(m, 0.0),
        )
        for m in months
    ]


def calc_monthly_trends(
    sales: Sequence[SaleRecord],
    orders: Sequence[OrderRecord] = (),
    collections: Sequence[CollectionRecord] = ()
) -> List[MonthlyActivity]:
    return monthly_activity(records_to_frame(list(sales) + list(orders) + list(collections)))


def _ranked(totals, names=None) -> List[ShareItem]:
    names = names or {}
    grand_total = sum(totals.values())
    items = [
        ShareItem(
            key=key,
            name=names.get(key) or key,
            amount=amount,
            share=amount / grand_total if grand_total > 0 else 0.0,
        )
        for key, amount in totals.items()
    ]
    items.sort(key=lambda item: item.amount, reverse=True)
    return items


def calc_org_ranking(sales: Sequence[SaleRecord]) -> List[ShareItem]:
    """Sales per organization, largest first. Rows without an org are left out."""
    return _ranked(sum_by(records_to_frame(sales), "org"))


def calc_top_customers(
    sales: Sequence[SaleRecord],
    top_n: Optional[int] = None,
    settings: Optional[Settings] = None
) -> List[ShareItem]:
    """
    Biggest customers by sales amount. The display name is the first one
    seen for the customer code.
    """
    settings = settings or get_settings()
    top_n = settings.TOP_CUSTOMER_RANKING_LIMIT if top_n is None else top_n
    df = records_to_frame(sales)
    names = first_label_by(df, "customer", "customer_name")
    return _ranked(sum_by(df, "customer"), names)[:top_n]
