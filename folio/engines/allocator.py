"""Cost-basis allocator: FIFO, LIFO, HIFO, and specific identification."""

from datetime import date
from decimal import Decimal

from folio.exceptions import (
    DataValidationError,
    InsufficientQuantityError,
    SpecIdMismatchError,
)
from folio.models.enums import CostBasisMethod, HoldingPeriod
from folio.models.transaction import AllocationPlan, RealizedPiece, SpecIdSelection, TaxLot


class CostBasisAllocator:
    """Selects lots for a sale and computes per-lot realized gain/loss.

    Planning is pure: lots are read, never mutated. Committing the plan
    against the ledger is the caller's job.
    """

    def __init__(self, long_term_days: int = 365):
        self.long_term_days = long_term_days

    def plan(
        self,
        lots: list[TaxLot],
        quantity: Decimal,
        sale_price: Decimal,
        sale_date: date,
        method: CostBasisMethod | str,
        selections: list[SpecIdSelection] | None = None,
        owner_id: str | None = None,
        symbol: str | None = None,
    ) -> AllocationPlan:
        """Plan a sale of ``quantity`` shares at ``sale_price``.

        Args:
            lots: Lots for the selling owner and symbol. Closed lots are ignored.
            method: FIFO, LIFO, HIFO or SPECID (strings are parsed).
            selections: Ordered (lot_id, quantity) pairs, required for SPECID.

        Raises:
            InvalidMethodError: unknown method string.
            SpecIdMismatchError: SPECID selections that don't fit the sale.
            InsufficientQuantityError: open lots can't cover the sale.
        """
        method = CostBasisMethod.parse(method)
        if quantity <= 0:
            raise DataValidationError("quantity", "sale quantity must be positive")
        if sale_price < 0:
            raise DataValidationError("price", "sale price cannot be negative")

        open_lots = [lot for lot in lots if lot.is_open]
        if owner_id is None or symbol is None:
            if not open_lots and not lots:
                raise DataValidationError("lots", "owner_id and symbol are required without lots")
            reference = (open_lots or lots)[0]
            owner_id = owner_id or reference.owner_id
            symbol = symbol or reference.symbol

        if method == CostBasisMethod.SPECID:
            draws = self._select_specific(open_lots, quantity, selections or [])
        else:
            draws = self._select_ordered(self.sort_lots(open_lots, method), quantity, symbol)

        pieces = [
            self._price_piece(lot, qty, sale_price, sale_date) for lot, qty in draws
        ]
        return AllocationPlan(
            owner_id=owner_id,
            symbol=symbol,
            method=method,
            quantity=quantity,
            sale_price=sale_price,
            sale_date=sale_date,
            pieces=pieces,
        )

    @staticmethod
    def sort_lots(lots: list[TaxLot], method: CostBasisMethod) -> list[TaxLot]:
        """Order lots for consumption under an automatic method."""
        match method:
            case CostBasisMethod.FIFO:
                return sorted(lots, key=lambda lot: lot.acquired_date)
            case CostBasisMethod.LIFO:
                return sorted(lots, key=lambda lot: lot.acquired_date, reverse=True)
            case CostBasisMethod.HIFO:
                # Highest unit cost first; the oldest lot wins a tie
                return sorted(lots, key=lambda lot: (-lot.unit_cost, lot.acquired_date))
            case _:
                return list(lots)

    def _select_ordered(
        self, ordered: list[TaxLot], quantity: Decimal, symbol: str
    ) -> list[tuple[TaxLot, Decimal]]:
        available = sum((lot.remaining_quantity for lot in ordered), Decimal("0"))
        if available < quantity:
            raise InsufficientQuantityError(symbol, quantity, available)

        remaining = quantity
        draws: list[tuple[TaxLot, Decimal]] = []
        for lot in ordered:
            if remaining <= 0:
                break
            take = min(lot.remaining_quantity, remaining)
            draws.append((lot, take))
            remaining -= take
        return draws

    def _select_specific(
        self, open_lots: list[TaxLot], quantity: Decimal, selections: list[SpecIdSelection]
    ) -> list[tuple[TaxLot, Decimal]]:
        if not selections:
            raise SpecIdMismatchError("SPECID requires at least one lot selection", quantity, Decimal("0"))

        by_id = {lot.id: lot for lot in open_lots}
        requested_per_lot: dict[str, Decimal] = {}
        draws: list[tuple[TaxLot, Decimal]] = []
        for selection in selections:
            lot = by_id.get(selection.lot_id)
            if lot is None:
                raise SpecIdMismatchError(f"lot {selection.lot_id} is not an open lot for this sale")
            requested_per_lot[lot.id] = requested_per_lot.get(lot.id, Decimal("0")) + selection.quantity
            if requested_per_lot[lot.id] > lot.remaining_quantity:
                raise SpecIdMismatchError(
                    f"lot {lot.id} has {lot.remaining_quantity} remaining, "
                    f"{requested_per_lot[lot.id]} selected"
                )
            draws.append((lot, selection.quantity))

        selected = sum((qty for _, qty in draws), Decimal("0"))
        if selected != quantity:
            raise SpecIdMismatchError(
                f"selected quantity {selected} does not equal sale quantity {quantity}",
                quantity,
                selected,
            )
        return draws

    def _price_piece(
        self, lot: TaxLot, quantity: Decimal, sale_price: Decimal, sale_date: date
    ) -> RealizedPiece:
        cost_basis = lot.cost_basis_for(quantity)
        proceeds = quantity * sale_price
        holding_days = (sale_date - lot.acquired_date).days
        return RealizedPiece(
            lot_id=lot.id,
            quantity=quantity,
            cost_basis=cost_basis,
            acquired_date=lot.acquired_date,
            proceeds=proceeds,
            gain_loss=proceeds - cost_basis,
            holding_period=self.holding_period(lot.acquired_date, sale_date),
            holding_days=holding_days,
        )

    def holding_period(self, acquired_date: date, sale_date: date) -> HoldingPeriod:
        """Long-term when held strictly more than ``long_term_days`` days."""
        if (sale_date - acquired_date).days > self.long_term_days:
            return HoldingPeriod.LONG_TERM
        return HoldingPeriod.SHORT_TERM
