"""Accounting engine: the orchestrator of Folio.

Routes each transaction through the duplicate detector, the lot ledger, the
cost-basis allocator and the wash-sale detector, and writes every resulting
mutation to the store inside a single all-or-nothing transaction.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import Decimal

from folio.config import EngineSettings
from folio.db.repository import FolioRepository
from folio.engines.allocator import CostBasisAllocator
from folio.engines.duplicates import DuplicateDetector, DuplicatePairs
from folio.engines.ledger import LotLedger
from folio.engines.wash_sale import WashSaleDetector
from folio.exceptions import ClaimError, DataValidationError
from folio.models.enums import DISPOSAL_TYPES, CostBasisMethod
from folio.models.reports import AuditEntry
from folio.models.transaction import (
    AllocationPlan,
    DuplicateMatch,
    RecordResult,
    SaleResult,
    SpecIdSelection,
    TaxLot,
    Transaction,
    WashSaleResult,
)

logger = logging.getLogger(__name__)


class AccountingEngine:
    """Applies claims, sales, and duplicate checks against the transaction store."""

    def __init__(self, repo: FolioRepository, settings: EngineSettings | None = None):
        self.repo = repo
        self.settings = settings or EngineSettings()
        self.allocator = CostBasisAllocator(self.settings.long_term_days)
        self.wash_sale = WashSaleDetector(self.settings.wash_sale_window_days)
        self.duplicates = DuplicateDetector(
            self.settings.duplicate_threshold, self.settings.duplicate_window_days
        )

    # --- Recording and claiming ---

    def record_transaction(
        self,
        txn: Transaction,
        method: CostBasisMethod | str | None = None,
        selections: list[SpecIdSelection] | None = None,
    ) -> RecordResult:
        """Store a new transaction and apply its ledger effects.

        Unclaimed transactions are checked for duplicates. Claimed
        acquisitions open a lot; claimed disposals are allocated, wash-checked
        and committed. Any error rolls the whole record back.
        """
        with self.repo.atomic():
            if self.repo.get_transaction(txn.id) is not None:
                raise DataValidationError("id", f"transaction {txn.id} is already recorded")
            self.repo.save_transaction(txn)
            if not txn.is_claimed:
                duplicate = self._flag_duplicates(txn)
                return RecordResult(transaction=self.repo.require_transaction(txn.id), duplicate=duplicate)
            lot, sale = self._apply_claimed(txn, method, selections)

        return RecordResult(transaction=self.repo.require_transaction(txn.id), lot=lot, sale=sale)

    def claim(
        self,
        transaction_ids: Iterable[str],
        owner_id: str,
        method: CostBasisMethod | str | None = None,
    ) -> int:
        """Claim unclaimed transactions for ``owner_id``. Returns the number claimed.

        Already-claimed transactions are skipped. Claims are applied in date
        order, acquisitions before disposals on the same day.
        """
        claimed = 0
        with self.repo.atomic():
            txns = [self.repo.require_transaction(tid) for tid in transaction_ids]
            pending = sorted(
                (t for t in txns if not t.is_claimed),
                key=lambda t: (t.date, t.is_disposal),
            )
            for txn in pending:
                self.repo.set_owner(txn.id, owner_id)
                self._apply_claimed(txn.model_copy(update={"owner_id": owner_id}), method, None)
                claimed += 1
            if claimed:
                self._audit("claim", {"owner_id": owner_id, "ids": [t.id for t in pending]}, {"claimed": claimed})
        return claimed

    def unclaim(self, transaction_ids: Iterable[str], owner_id: str) -> int:
        """Return the owner's transactions to the unclaimed pool.

        An acquisition's untouched lot is removed with it. Acquisitions whose
        lot was already drawn on, and sales with committed disposals, raise
        ``ClaimError`` because lots are never resurrected.
        """
        unclaimed = 0
        touched: set[str] = set()
        with self.repo.atomic():
            for tid in transaction_ids:
                txn = self.repo.require_transaction(tid)
                if txn.owner_id != owner_id:
                    continue
                if txn.is_acquisition:
                    lot = self.repo.get_lot_for_transaction(txn.id)
                    if lot is not None and lot.remaining_quantity < lot.quantity:
                        raise ClaimError(txn.id, "its lot has already been drawn on by a sale")
                    if lot is not None:
                        self.repo.delete_lot(lot.id)
                elif txn.is_disposal and self.repo.has_disposals(txn.id):
                    raise ClaimError(txn.id, "the sale has committed lot disposals")
                self.repo.set_owner(txn.id, None)
                self.repo.set_wash_sale(txn.id, False, None)
                touched.add(txn.symbol)
                unclaimed += 1
            for symbol in sorted(touched):
                self._reevaluate(owner_id, symbol)
            if unclaimed:
                self._audit("unclaim", {"owner_id": owner_id}, {"unclaimed": unclaimed})
        return unclaimed

    # --- Sales: plan, then commit ---

    def plan_sale(
        self,
        owner_id: str,
        symbol: str,
        quantity: Decimal,
        sale_price: Decimal,
        sale_date: date,
        method: CostBasisMethod | str | None = None,
        selections: list[SpecIdSelection] | None = None,
    ) -> AllocationPlan:
        """Preview which lots a sale would consume. Nothing is written."""
        lots = self.repo.get_lots(owner_id, symbol)
        return self.allocator.plan(
            lots,
            quantity,
            sale_price,
            sale_date,
            method or self.settings.default_method,
            selections,
            owner_id=owner_id,
            symbol=symbol.strip().upper(),
        )

    def commit_sale(self, plan: AllocationPlan, sale: Transaction) -> SaleResult:
        """Commit a previewed plan against its sale transaction.

        The sale is stored if it isn't already, and claimed for the plan's
        owner if it sits in the unclaimed pool. A plan made stale by another
        sale fails on lot consumption and nothing is written.
        """
        self._require_plan_matches(plan, sale)

        with self.repo.atomic():
            stored = self.repo.get_transaction(sale.id)
            if stored is None:
                self.repo.save_transaction(sale.model_copy(update={"owner_id": plan.owner_id}))
                return self._commit(plan, sale.id)

            self._require_plan_matches(plan, stored)
            if stored.owner_id is None:
                self.repo.set_owner(sale.id, plan.owner_id)
            elif stored.owner_id != plan.owner_id:
                raise ClaimError(sale.id, f"sale is not claimed by {plan.owner_id}")
            elif self.repo.has_disposals(sale.id):
                raise ClaimError(sale.id, "sale has already been committed")
            return self._commit(plan, sale.id)

    @staticmethod
    def _require_plan_matches(plan: AllocationPlan, sale: Transaction) -> None:
        if (
            sale.symbol != plan.symbol
            or sale.quantity != plan.quantity
            or sale.price != plan.sale_price
            or sale.date != plan.sale_date
        ):
            raise DataValidationError("plan", f"plan does not describe sale {sale.id}")
        if sale.type not in DISPOSAL_TYPES:
            raise DataValidationError("type", f"{sale.type.value} is not a disposal")

    def _apply_claimed(
        self,
        txn: Transaction,
        method: CostBasisMethod | str | None,
        selections: list[SpecIdSelection] | None,
    ) -> tuple[TaxLot | None, SaleResult | None]:
        if txn.is_acquisition:
            lot = LotLedger().open_lot(txn)
            self.repo.save_lot(lot)
            logger.debug("Opened lot %s: %s %s", lot.id, lot.quantity, lot.symbol)
            self._reevaluate(txn.owner_id, txn.symbol)
            return lot, None
        if txn.is_disposal:
            plan = self.plan_sale(
                txn.owner_id, txn.symbol, txn.quantity, txn.price, txn.date, method, selections
            )
            return None, self._commit(plan, txn.id)
        return None, None

    def _commit(self, plan: AllocationPlan, sale_id: str) -> SaleResult:
        ledger = LotLedger(self.repo.get_lots(plan.owner_id, plan.symbol))
        for piece in plan.pieces:
            ledger.consume(piece.lot_id, piece.quantity)
            self.repo.update_lot_remaining(piece.lot_id, ledger.get(piece.lot_id).remaining_quantity)
        self.repo.save_disposals(sale_id, plan)

        excluded = self._excluded_quantities(ledger, plan.consumed_by_lot())
        history = self.repo.get_transactions(owner_id=plan.owner_id, symbol=plan.symbol)
        wash = self.wash_sale.evaluate(
            plan.sale_date, plan.symbol, plan.total_gain_loss, plan.quantity, history, excluded
        )
        self._annotate_wash_sale(sale_id, wash)

        self._audit(
            "commit_sale",
            {"sale_id": sale_id, "method": plan.method.value, "quantity": plan.quantity},
            {
                "lots": [p.lot_id for p in plan.pieces],
                "gain_loss": plan.total_gain_loss,
                "wash_sale_disallowed": wash.disallowed_loss,
            },
        )
        return SaleResult(sale_id=sale_id, plan=plan, wash_sale=wash)

    @staticmethod
    def _excluded_quantities(ledger: LotLedger, consumed: dict[str, Decimal]) -> dict[str, Decimal]:
        """Map consumed lot quantities back to their acquisition transactions."""
        excluded: dict[str, Decimal] = {}
        for lot_id, qty in consumed.items():
            txn_id = ledger.get(lot_id).transaction_id
            excluded[txn_id] = excluded.get(txn_id, Decimal("0")) + qty
        return excluded

    def _annotate_wash_sale(self, sale_id: str, result: WashSaleResult) -> None:
        amount = result.disallowed_loss if result.is_wash_sale else None
        self.repo.set_wash_sale(sale_id, result.is_wash_sale, amount)

    # --- Wash sales ---

    def reevaluate_wash_sales(self, owner_id: str, symbol: str) -> dict[str, WashSaleResult]:
        """Recompute wash-sale flags for every committed sale of an owner/symbol."""
        with self.repo.atomic():
            return self._reevaluate(owner_id, symbol)

    def _reevaluate(self, owner_id: str, symbol: str) -> dict[str, WashSaleResult]:
        history = self.repo.get_transactions(owner_id=owner_id, symbol=symbol)
        ledger = LotLedger(self.repo.get_lots(owner_id, symbol))
        results: dict[str, WashSaleResult] = {}
        for sale in history:
            if not sale.is_disposal:
                continue
            disposals = self.repo.get_disposals(sale_id=sale.id)
            if not disposals:
                continue
            gain_loss = sum((Decimal(d["gain_loss"]) for d in disposals), Decimal("0"))
            consumed: dict[str, Decimal] = {}
            for d in disposals:
                consumed[d["lot_id"]] = consumed.get(d["lot_id"], Decimal("0")) + Decimal(d["quantity"])
            result = self.wash_sale.evaluate(
                sale.date,
                sale.symbol,
                gain_loss,
                sale.quantity,
                history,
                self._excluded_quantities(ledger, consumed),
            )
            self._annotate_wash_sale(sale.id, result)
            results[sale.id] = result
        return results

    def realized_gain_loss(self, sale_id: str) -> Decimal:
        disposals = self.repo.get_disposals(sale_id=sale_id)
        return sum((Decimal(d["gain_loss"]) for d in disposals), Decimal("0"))

    def would_trigger_wash_sale(self, buy_date: date, symbol: str, owner_id: str) -> list[str]:
        """Loss sales that a purchase on ``buy_date`` would turn into wash sales."""
        sales = self.repo.get_transactions(owner_id=owner_id, symbol=symbol, types=DISPOSAL_TYPES)
        gains = {sale.id: self.realized_gain_loss(sale.id) for sale in sales}
        return self.wash_sale.affected_sales(buy_date, symbol, sales, gains)

    # --- Duplicates ---

    def _flag_duplicates(self, txn: Transaction) -> DuplicateMatch | None:
        window = timedelta(days=self.duplicates.window_days)
        existing = self.repo.get_transactions(
            symbol=txn.symbol,
            start=txn.date - window,
            end=txn.date + window,
            types=[txn.type],
        )
        match = self.duplicates.best_match(txn, existing)
        if match is None:
            return None

        pairs = DuplicatePairs.from_transactions(existing)
        pairs.link(txn.id, match.transaction_id, match.score)
        self._persist_pairs(pairs)
        logger.info(
            "Flagged %s as likely duplicate of %s (score %d: %s)",
            txn.id, match.transaction_id, match.score, ", ".join(match.reasons),
        )
        self._audit(
            "flag_duplicate",
            {"transaction_id": txn.id},
            {"duplicate_of_id": match.transaction_id, "score": match.score, "reasons": match.reasons},
        )
        return match

    def _persist_pairs(self, pairs: DuplicatePairs) -> None:
        for txn_id, link in pairs.changes().items():
            if link is None:
                self.repo.set_duplicate_link(txn_id, None, None)
            else:
                self.repo.set_duplicate_link(txn_id, link.partner_id, link.score)

    def duplicate_review_queue(self) -> list[tuple[Transaction, Transaction | None]]:
        """Flagged unclaimed transactions paired with the transaction they duplicate."""
        queue = []
        for txn in self.repo.get_flagged_duplicates():
            partner = self.repo.get_transaction(txn.duplicate_of_id) if txn.duplicate_of_id else None
            queue.append((txn, partner))
        return queue

    def delete_transaction(self, txn_id: str) -> None:
        """Delete an unclaimed transaction, resolving duplicate references to it."""
        with self.repo.atomic():
            txn = self.repo.require_transaction(txn_id)
            if txn.is_claimed:
                raise ClaimError(txn_id, "claimed transactions must be unclaimed before deletion")

            same_symbol = self.repo.get_transactions(symbol=txn.symbol)
            survivors = [t for t in same_symbol if t.id != txn_id]
            by_id = {t.id: t for t in survivors}
            pairs = DuplicatePairs.from_transactions(same_symbol)

            def rematch(survivor_id: str) -> DuplicateMatch | None:
                return self.duplicates.best_match(by_id[survivor_id], survivors, exclude_ids=[txn_id])

            pairs.remove(txn_id, rematch)
            self._persist_pairs(pairs)
            self.repo.delete_transaction(txn_id)
            self._audit("delete_transaction", {"transaction_id": txn_id}, {"resolved": list(pairs.changes())})

    def delete_duplicate(self, txn_id: str) -> None:
        """Review-queue "delete" action: only flagged, unclaimed duplicates."""
        txn = self.repo.require_transaction(txn_id)
        if not txn.is_duplicate_flag:
            raise DataValidationError("id", f"transaction {txn_id} is not flagged as a duplicate")
        self.delete_transaction(txn_id)

    # --- Lot views ---

    def open_lots(self, owner_id: str, symbol: str) -> list[TaxLot]:
        return LotLedger(self.repo.get_lots(owner_id, symbol)).list_open_lots(owner_id, symbol)

    def available_quantity(self, owner_id: str, symbol: str) -> Decimal:
        return LotLedger(self.repo.get_lots(owner_id, symbol)).total_available(owner_id, symbol)

    def average_cost(self, owner_id: str, symbol: str) -> Decimal:
        return LotLedger(self.repo.get_lots(owner_id, symbol)).weighted_average_cost(owner_id, symbol)

    def _audit(self, operation: str, inputs: dict, output: dict) -> None:
        self.repo.save_audit_entry(AuditEntry(
            timestamp=datetime.now(),
            engine="AccountingEngine",
            operation=operation,
            inputs=inputs,
            output=output,
        ))
