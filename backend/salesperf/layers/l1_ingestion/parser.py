# L1: Ingestion Layer - Record parsing and frame building
import pandas as pd
from typing import Dict, Any, List, Optional, Callable, Iterable, Sequence
from dataclasses import dataclass
from pydantic import TypeAdapter, ValidationError
import structlog

from salesperf.core.exceptions import InvalidRecordException
from salesperf.layers.l1_ingestion.dates import extract_month
from salesperf.models.schemas.records import AnyRecord, BaseRecord

logger = structlog.get_logger()

FRAME_COLUMNS = [
    "kind", "org", "person", "person_name", "customer", "customer_name",
    "product", "month", "amount", "quantity",
]

_record_list_adapter = TypeAdapter(List[AnyRecord])


@dataclass(frozen=True)
class RecordAccessor:
    """Where each variant keeps the fields downstream aggregation needs."""
    amount: Callable[[Any], float]
    date: Optional[str] = None
    person: Optional[str] = None
    person_name: Optional[str] = None
    customer: Optional[str] = None
    customer_name: Optional[str] = None
    product: Optional[str] = None
    quantity: Optional[Callable[[Any], float]] = None


ACCESSORS: Dict[str, RecordAccessor] = {
    "sale": RecordAccessor(
        amount=lambda r: r.amount,
        date="sale_date",
        person="person_id",
        person_name="person_name",
        customer="customer_id",
        customer_name="customer_name",
        product="product_id",
        quantity=lambda r: r.quantity,
    ),
    "order": RecordAccessor(
        amount=lambda r: r.amount,
        date="order_date",
        person="person_id",
        person_name="person_name",
        customer="customer_id",
        product="product_id",
    ),
    "collection": RecordAccessor(
        amount=lambda r: r.amount,
        date="collection_date",
        person="person",
        customer="customer_id",
    ),
    "team_contribution": RecordAccessor(
        amount=lambda r: r.sales.actual,
        person="person",
    ),
    "org_profit": RecordAccessor(
        amount=lambda r: r.sales.actual,
    ),
    "receivable_aging": RecordAccessor(
        amount=lambda r: r.aging.total,
        person="person",
        customer="customer_id",
        customer_name="customer_name",
    ),
    "profitability": RecordAccessor(
        amount=lambda r: r.sales.actual,
        person="person",
        customer="customer_id",
        product="product_id",
        quantity=lambda r: r.quantity.actual,
    ),
}


def parse_records(rows: Iterable[Dict[str, Any]]) -> List[BaseRecord]:
    """Validate raw dicts (each carrying a `kind`) into typed record variants."""
    try:
        return _record_list_adapter.validate_python(list(rows))
    except ValidationError as e:
        raise InvalidRecordException(
            "Rows do not match any known record variant",
            details={"errors": e.errors(include_url=False)}
        ) from e


def _accessor_for(record: Any) -> RecordAccessor:
    if not isinstance(record, BaseRecord):
        raise InvalidRecordException(
            f"Expected a record variant, got {type(record).__name__}"
        )
    accessor = ACCESSORS.get(getattr(record, "kind", None))
    if accessor is None:
        raise InvalidRecordException(f"No accessor for record kind {record.kind!r}")
    return accessor


def _text(record: Any, attr: Optional[str]) -> str:
    if attr is None:
        return ""
    return str(getattr(record, attr) or "").strip()


def record_month(record: BaseRecord) -> Optional[str]:
    """YYYY-MM bucket of a record, or None when it has no usable date."""
    accessor = _accessor_for(record)
    if accessor.date is None:
        return None
    return extract_month(getattr(record, accessor.date))


def record_amount(record: BaseRecord) -> float:
    return float(_accessor_for(record).amount(record) or 0.0)


def record_person(record: BaseRecord) -> str:
    return _text(record, _accessor_for(record).person)


def record_customer(record: BaseRecord) -> str:
    return _text(record, _accessor_for(record).customer)


def _to_row(record: BaseRecord) -> Dict[str, Any]:
    accessor = _accessor_for(record)
    month = extract_month(getattr(record, accessor.date)) if accessor.date else None
    return {
        "kind": record.kind,
        "org": (record.org or "").strip(),
        "person": _text(record, accessor.person),
        "person_name": _text(record, accessor.person_name),
        "customer": _text(record, accessor.customer),
        "customer_name": _text(record, accessor.customer_name),
        "product": _text(record, accessor.product),
        "month": month,
        "amount": float(accessor.amount(record) or 0.0),
        "quantity": float(accessor.quantity(record) or 0.0) if accessor.quantity else 0.0,
    }


def records_to_frame(records: Sequence[BaseRecord]) -> pd.DataFrame:
    """
    Flatten record variants into one variant-agnostic DataFrame.

    Rows whose date cannot be parsed keep month=None: they still count
    toward totals and are only dropped by month-bucketed views.
    """
    rows = [_to_row(r) for r in records]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["amount"] = df["amount"].astype(float)
    df["quantity"] = df["quantity"].astype(float)

    dated_kinds = {k for k, a in ACCESSORS.items() if a.date}
    undated = int((df["kind"].isin(dated_kinds) & df["month"].isna()).sum())
    if undated:
        logger.warning("Rows without a parseable date", count=undated)
    return df
