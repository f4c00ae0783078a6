"""Holdings reconciliation: open lots versus claimed transaction history."""

import logging
from datetime import datetime

from folio.db.repository import FolioRepository
from folio.engines.ledger import LotLedger
from folio.exceptions import ReconciliationError
from folio.models.reports import AuditEntry, HoldingDiscrepancy

logger = logging.getLogger(__name__)


class HoldingsReconciler:
    """Checks that every owner/symbol's open lots add up to its net claimed history.

    A mismatch usually means a sale was claimed before the acquisition that
    funds it. Mismatches are reported, never repaired.
    """

    def __init__(self, repo: FolioRepository):
        self.repo = repo

    def reconcile(
        self,
        owner_id: str | None = None,
        symbol: str | None = None,
        strict: bool = False,
    ) -> list[HoldingDiscrepancy]:
        """Return one discrepancy per diverging owner/symbol pair.

        With ``strict=True`` any divergence raises ``ReconciliationError``.
        """
        transactions = [
            t for t in self.repo.get_transactions(owner_id=owner_id, symbol=symbol)
            if t.is_claimed
        ]
        lots = self.repo.get_lots(owner_id=owner_id, symbol=symbol)
        ledger = LotLedger(lots)

        pairs = {(t.owner_id, t.symbol) for t in transactions}
        pairs |= {(lot.owner_id, lot.symbol) for lot in lots}

        discrepancies: list[HoldingDiscrepancy] = []
        for pair_owner, pair_symbol in sorted(pairs):
            found = ledger.reconcile(pair_owner, pair_symbol, transactions)
            if found is not None:
                discrepancies.append(found)

        with self.repo.atomic():
            self.repo.save_audit_entry(AuditEntry(
                timestamp=datetime.now(),
                engine="HoldingsReconciler",
                operation="reconcile",
                inputs={"owner_id": owner_id, "symbol": symbol},
                output={"pairs": len(pairs), "discrepancies": len(discrepancies)},
            ))

        if strict and discrepancies:
            raise ReconciliationError("; ".join(d.message for d in discrepancies))
        return discrepancies
