# Schemas package
from salesperf.models.schemas.records import (
    PlanActual, AgingBuckets, BaseRecord, SaleRecord, OrderRecord,
    CollectionRecord, TeamContributionRecord, OrgProfitRecord,
    ReceivableAgingRecord, ProfitabilityRecord, AnyRecord
)

__all__ = [
    "PlanActual", "AgingBuckets", "BaseRecord", "SaleRecord", "OrderRecord",
    "CollectionRecord", "TeamContributionRecord", "OrgProfitRecord",
    "ReceivableAgingRecord", "ProfitabilityRecord", "AnyRecord"
]
