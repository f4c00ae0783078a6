"""Accounting engines."""

from folio.engines.accounting import AccountingEngine
from folio.engines.allocator import CostBasisAllocator
from folio.engines.duplicates import DuplicateDetector, DuplicatePairs
from folio.engines.gains import GainsReportEngine
from folio.engines.ledger import LotLedger
from folio.engines.reconciliation import HoldingsReconciler
from folio.engines.wash_sale import WashSaleDetector, format_wash_sale_warning

__all__ = [
    "AccountingEngine",
    "CostBasisAllocator",
    "DuplicateDetector",
    "DuplicatePairs",
    "GainsReportEngine",
    "HoldingsReconciler",
    "LotLedger",
    "WashSaleDetector",
    "format_wash_sale_warning",
]
