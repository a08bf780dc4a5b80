# L7: Analytics Layer - Customer grade migration
from typing import Dict, List, Optional, Sequence, Tuple
import structlog

from salesperf.config import Settings, get_settings
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.aggregator import of_kind, month_entity_totals
from salesperf.layers.l7_analytics.thresholds import assign_grade, grade_thresholds
from salesperf.models.schemas.records import SaleRecord
from salesperf.models.schemas.schemas import (
    CustomerGrade, GRADE_ORDER, GradeDistribution, GradeThresholds,
    MigrationFlow, MigrationMatrix, MigrationResult, MigrationSummary
)

logger = structlog.get_logger()

Grades = Dict[str, CustomerGrade]


def monthly_customer_sales(sales: Sequence[SaleRecord]) -> Dict[str, Dict[str, float]]:
    """Net sale amount per customer per month; undated or unassigned rows are skipped."""
    df = of_kind(records_to_frame(sales), "sale")
    return month_entity_totals(df, "customer")


def grade_customers(
    month_sales: Dict[str, Dict[str, float]],
    thresholds: GradeThresholds
) -> Dict[str, Grades]:
    """Grade every known customer in every month, N where there was no activity."""
    customers = sorted({c for amounts in month_sales.values() for c in amounts})
    return {
        month: {c: assign_grade(amounts.get(c, 0.0), thresholds) for c in customers}
        for month, amounts in month_sales.items()
    }


def compare_months(
    previous: Grades,
    current: Grades
) -> Tuple[List[MigrationFlow], Dict[str, int]]:
    """
    Flows and movement counts between two consecutive months.
    Customers inactive in both months are not counted anywhere.
    """
    flow_customers: Dict[Tuple[CustomerGrade, CustomerGrade], List[str]] = {}
    counts = {
        "upgraded": 0, "maintained": 0, "downgraded": 0,
        "churned": 0, "new_customers": 0, "total_active": 0,
    }

    for customer in sorted(set(previous) | set(current)):
        from_grade = previous.get(customer, CustomerGrade.N)
        to_grade = current.get(customer, CustomerGrade.N)
        if from_grade == CustomerGrade.N and to_grade == CustomerGrade.N:
            continue

        flow_customers.setdefault((from_grade, to_grade), []).append(customer)

        if from_grade == CustomerGrade.N:
            counts["new_customers"] += 1
            counts["total_active"] += 1
        elif to_grade == CustomerGrade.N:
            counts["churned"] += 1
        else:
            counts["total_active"] += 1
            if GRADE_ORDER[to_grade] > GRADE_ORDER[from_grade]:
                counts["upgraded"] += 1
            elif GRADE_ORDER[to_grade] < GRADE_ORDER[from_grade]:
                counts["downgraded"] += 1
            else:
                counts["maintained"] += 1

    flows = [
        MigrationFlow(from_grade=f, to_grade=t, count=len(names), customers=names)
        for (f, t), names in flow_customers.items()
    ]
    flows.sort(key=lambda flow: (-GRADE_ORDER[flow.from_grade], -GRADE_ORDER[flow.to_grade]))
    return flows, counts


def grade_distribution(
    month_sales: Dict[str, Dict[str, float]],
    thresholds: GradeThresholds
) -> List[GradeDistribution]:
    """Customers per active grade in each month."""
    distribution = []
    for month, amounts in month_sales.items():
        tally = {grade: 0 for grade in CustomerGrade}
        for amount in amounts.values():
            tally[assign_grade(amount, thresholds)] += 1
        distribution.append(GradeDistribution(
            month=month,
            A=tally[CustomerGrade.A],
            B=tally[CustomerGrade.B],
            C=tally[CustomerGrade.C],
            D=tally[CustomerGrade.D],
        ))
    return distribution


def calc_customer_migration(
    sales: Sequence[SaleRecord],
    settings: Optional[Settings] = None
) -> MigrationResult:
    """
    Month-over-month customer grade migration.

    Thresholds come once from every positive (month, customer) amount in the
    data so that grades mean the same thing in every month of this run.
    Month pairs are walked in chronological order.
    """
    settings = settings or get_settings()
    month_sales = monthly_customer_sales(sales)
    if not month_sales:
        return MigrationResult(
            matrices=[], summaries=[], thresholds=GradeThresholds(A=0.0, B=0.0, C=0.0)
        )

    amounts = [a for per_month in month_sales.values() for a in per_month.values()]
    thresholds = grade_thresholds(amounts, settings.GRADE_PERCENTILES)
    grades = grade_customers(month_sales, thresholds)
    months = sorted(grades)

    matrices: List[MigrationMatrix] = []
    summaries: List[MigrationSummary] = []
    for previous_month, month in zip(months, months[1:]):
        flows, counts = compare_months(grades[previous_month], grades[month])
        matrices.append(MigrationMatrix(month=month, previous_month=previous_month, flows=flows))
        summaries.append(MigrationSummary(month=month, previous_month=previous_month, **counts))

    logger.info(
        "Customer migration complete",
        months=len(months),
        customers=len(grades[months[0]]),
        threshold_a=thresholds.A
    )
    return MigrationResult(
        matrices=matrices,
        summaries=summaries,
        thresholds=thresholds,
        distribution=grade_distribution(month_sales, thresholds),
    )
