# Input record variants - ERP exports after upstream normalization
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Union, Literal, Annotated
from datetime import date, datetime


DateValue = Union[datetime, date, str, int, float, None]


class PlanActual(BaseModel):
    """Plan/actual pair for one measure."""
    model_config = ConfigDict(frozen=True)

    plan: float = 0.0
    actual: float = 0.0

    @property
    def diff(self) -> float:
        return self.actual - self.plan


class AgingBuckets(BaseModel):
    """Booked receivable amounts by age bucket."""
    model_config = ConfigDict(frozen=True)

    month1: float = 0.0
    month2: float = 0.0
    month3: float = 0.0
    month4: float = 0.0
    month5: float = 0.0
    month6: float = 0.0
    overdue: float = 0.0  # older than 6 months
    total: float = 0.0

    @property
    def long_overdue(self) -> float:
        """Amount outstanding for three months or longer."""
        return self.month3 + self.month4 + self.month5 + self.month6 + self.overdue


class BaseRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    org: str = ""


class SaleRecord(BaseRecord):
    kind: Literal["sale"] = "sale"
    person_id: str = ""
    person_name: str = ""
    customer_id: str = ""
    customer_name: str = ""
    product_id: str = ""
    sale_date: DateValue = None
    amount: float = 0.0
    quantity: float = 0.0
    currency: str = "KRW"


class OrderRecord(BaseRecord):
    kind: Literal["order"] = "order"
    person_id: str = ""
    person_name: str = ""
    customer_id: str = ""
    product_id: str = ""
    order_date: DateValue = None
    amount: float = 0.0


class CollectionRecord(BaseRecord):
    # person is exported as a name by some ERP screens, as an id by others
    kind: Literal["collection"] = "collection"
    person: str = ""
    customer_id: str = ""
    collection_date: DateValue = None
    amount: float = 0.0


class TeamContributionRecord(BaseRecord):
    kind: Literal["team_contribution"] = "team_contribution"
    person: str = ""
    sales: PlanActual = PlanActual()
    contribution_margin: PlanActual = PlanActual()
    contribution_margin_rate: PlanActual = PlanActual()  # percent, as exported
    # cost lines for the efficiency view; mfg_variable_cost already includes
    # raw material, purchase and outsourcing
    raw_material: PlanActual = PlanActual()
    purchase: PlanActual = PlanActual()
    outsourcing: PlanActual = PlanActual()
    mfg_variable_cost: PlanActual = PlanActual()
    sga_variable_cost: PlanActual = PlanActual()
    sga_fixed_cost: PlanActual = PlanActual()
    operating_margin_rate: PlanActual = PlanActual()  # percent, as exported


class OrgProfitRecord(BaseRecord):
    kind: Literal["org_profit"] = "org_profit"
    sales: PlanActual = PlanActual()
    gross_profit: PlanActual = PlanActual()
    operating_profit: PlanActual = PlanActual()
    contribution_margin: PlanActual = PlanActual()


class ReceivableAgingRecord(BaseRecord):
    kind: Literal["receivable_aging"] = "receivable_aging"
    person: str = ""
    customer_id: str = ""
    customer_name: str = ""
    currency: str = "KRW"
    aging: AgingBuckets = AgingBuckets()


class ProfitabilityRecord(BaseRecord):
    """Plan/actual row per (org, customer, product)."""
    kind: Literal["profitability"] = "profitability"
    person: str = ""
    customer_id: str = ""
    product_id: str = ""
    product_name: str = ""
    product_group: str = ""
    quantity: PlanActual = PlanActual()
    sales: PlanActual = PlanActual()
    gross_profit: PlanActual = PlanActual()


AnyRecord = Annotated[
    Union[
        SaleRecord,
        OrderRecord,
        CollectionRecord,
        TeamContributionRecord,
        OrgProfitRecord,
        ReceivableAgingRecord,
        ProfitabilityRecord,
    ],
    Field(discriminator="kind"),
]
