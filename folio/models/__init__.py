"""Data models for Folio."""

from folio.models.enums import (
    ACQUISITION_TYPES,
    DISPOSAL_TYPES,
    CostBasisMethod,
    HoldingPeriod,
    TransactionType,
)
from folio.models.reports import AuditEntry, GainsSummary, HoldingDiscrepancy, RealizedGainLine
from folio.models.transaction import (
    AllocationPlan,
    DuplicateMatch,
    RealizedPiece,
    RecordResult,
    SaleResult,
    SpecIdSelection,
    TaxLot,
    Transaction,
    WashSaleResult,
)

__all__ = [
    "ACQUISITION_TYPES",
    "AllocationPlan",
    "AuditEntry",
    "CostBasisMethod",
    "DISPOSAL_TYPES",
    "DuplicateMatch",
    "GainsSummary",
    "HoldingDiscrepancy",
    "HoldingPeriod",
    "RealizedGainLine",
    "RealizedPiece",
    "RecordResult",
    "SaleResult",
    "SpecIdSelection",
    "TaxLot",
    "Transaction",
    "TransactionType",
    "WashSaleResult",
]
