# L7: Analytics Layer - 3-way plan/actual variance
from decimal import Decimal
from typing import Dict, List, Sequence, Union
import structlog

from salesperf.models.schemas.records import ProfitabilityRecord
from salesperf.models.schemas.schemas import OrgVarianceSummary, VarianceItem, VarianceSummary

logger = structlog.get_logger()

Number = Union[int, float, Decimal]

# Stored precision for unit prices and the price/volume effects
QUANT = Decimal("0.000001")
ZERO = Decimal(0)


def to_decimal(value: Number) -> Decimal:
    """Exact decimal for a plain number; floats go through their shortest repr."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def decompose(
    plan_qty: Number,
    actual_qty: Number,
    plan_amount: Number,
    actual_amount: Number
) -> Dict[str, Decimal]:
    """
    Split actual - plan into price, volume and mix effects.

        price  = (actual price - plan price) x actual qty
        volume = (actual qty - plan qty) x plan price
        mix    = total - price - volume

    Everything is carried in Decimal. Price and volume are rounded to
    6 places and mix is the exact residual, so price + volume + mix
    equals the total with no float drift.
    A zero quantity gives a unit price of 0.
    """
    plan_qty = to_decimal(plan_qty)
    actual_qty = to_decimal(actual_qty)
    plan_amount = to_decimal(plan_amount)
    actual_amount = to_decimal(actual_amount)

    plan_price = plan_amount / plan_qty if plan_qty != 0 else ZERO
    actual_price = actual_amount / actual_qty if actual_qty != 0 else ZERO

    total = actual_amount - plan_amount
    price = ((actual_price - plan_price) * actual_qty).quantize(QUANT)
    volume = ((actual_qty - plan_qty) * plan_price).quantize(QUANT)
    return {
        "plan_price": plan_price.quantize(QUANT),
        "actual_price": actual_price.quantize(QUANT),
        "total_variance": total,
        "price_variance": price,
        "volume_variance": volume,
        "mix_variance": total - price - volume,
    }


def calc_variance_analysis(rows: Sequence[ProfitabilityRecord]) -> List[VarianceItem]:
    """Variance per (org, customer, product) row. Rows with no quantity on either side are dropped."""
    items = []
    for r in rows:
        plan_qty = r.quantity.plan
        actual_qty = r.quantity.actual
        if plan_qty == 0 and actual_qty == 0:
            continue

        parts = decompose(plan_qty, actual_qty, r.sales.plan, r.sales.actual)
        items.append(VarianceItem(
            org=r.org,
            customer=r.customer_id,
            product=r.product_id,
            plan_qty=plan_qty,
            actual_qty=actual_qty,
            plan_amount=r.sales.plan,
            actual_amount=r.sales.actual,
            **parts,
        ))

    logger.info("Variance decomposition complete", items=len(items), dropped=len(rows) - len(items))
    return items


def calc_variance_summary(items: Sequence[VarianceItem]) -> VarianceSummary:
    return VarianceSummary(
        total_variance=sum((i.total_variance for i in items), ZERO),
        price_variance=sum((i.price_variance for i in items), ZERO),
        volume_variance=sum((i.volume_variance for i in items), ZERO),
        mix_variance=sum((i.mix_variance for i in items), ZERO),
        item_count=len(items),
    )


def calc_org_variance_summaries(items: Sequence[VarianceItem]) -> List[OrgVarianceSummary]:
    """Per-org rollup for the waterfall view, largest absolute gap first."""
    per_org: Dict[str, List[VarianceItem]] = {}
    for item in items:
        if item.org:
            per_org.setdefault(item.org, []).append(item)

    summaries = [
        OrgVarianceSummary(
            org=org,
            total_variance=sum((i.total_variance for i in org_items), ZERO),
            price_variance=sum((i.price_variance for i in org_items), ZERO),
            volume_variance=sum((i.volume_variance for i in org_items), ZERO),
            mix_variance=sum((i.mix_variance for i in org_items), ZERO),
        )
        for org, org_items in per_org.items()
    ]
    summaries.sort(key=lambda s: abs(s.total_variance), reverse=True)
    return summaries
