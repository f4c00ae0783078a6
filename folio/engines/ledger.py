"""Tax lot ledger: open, list, and consume acquisition lots."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from folio.exceptions import (
    DataValidationError,
    InsufficientLotQuantityError,
    InvalidAcquisitionError,
    LotNotFoundError,
)
from folio.models.enums import ACQUISITION_TYPES, DISPOSAL_TYPES
from folio.models.reports import HoldingDiscrepancy
from folio.models.transaction import RealizedPiece, TaxLot, Transaction

logger = logging.getLogger(__name__)


class LotLedger:
    """Open-lot state for one or more (owner, symbol) pairs.

    Lots are held by reference, so listings always reflect the remaining
    quantities left by earlier ``consume`` calls. Fully consumed lots stay in
    the ledger for audit and are never reopened.
    """

    def __init__(self, lots: Iterable[TaxLot] = ()):
        self._lots: dict[str, TaxLot] = {lot.id: lot for lot in lots}

    def __len__(self) -> int:
        return len(self._lots)

    def get(self, lot_id: str) -> TaxLot:
        try:
            return self._lots[lot_id]
        except KeyError:
            raise LotNotFoundError(lot_id) from None

    def open_lot(self, acquisition: Transaction) -> TaxLot:
        """Create a lot for a claimed BUY or TRANSFER_IN.

        Cost basis is the gross amount plus fees.
        """
        if acquisition.type not in ACQUISITION_TYPES:
            raise InvalidAcquisitionError(
                acquisition.id, f"{acquisition.type.value} is not an acquisition"
            )
        if acquisition.quantity <= 0:
            raise InvalidAcquisitionError(acquisition.id, "quantity must be positive")
        if acquisition.owner_id is None:
            raise InvalidAcquisitionError(acquisition.id, "transaction is unclaimed")

        lot = TaxLot(
            transaction_id=acquisition.id,
            owner_id=acquisition.owner_id,
            symbol=acquisition.symbol,
            quantity=acquisition.quantity,
            remaining_quantity=acquisition.quantity,
            cost_basis=(acquisition.amount or Decimal("0")) + acquisition.fees,
            acquired_date=acquisition.date,
        )
        self._lots[lot.id] = lot
        return lot

    def add(self, lot: TaxLot) -> None:
        self._lots[lot.id] = lot

    def lots(self, owner_id: str, symbol: str) -> list[TaxLot]:
        """All lots for an owner/symbol, open or closed, oldest first."""
        symbol = symbol.strip().upper()
        return sorted(
            (lot for lot in self._lots.values()
             if lot.owner_id == owner_id and lot.symbol == symbol),
            key=lambda lot: lot.acquired_date,
        )

    def list_open_lots(self, owner_id: str, symbol: str) -> list[TaxLot]:
        return [lot for lot in self.lots(owner_id, symbol) if lot.is_open]

    def consume(self, lot_id: str, quantity: Decimal) -> RealizedPiece:
        """Reduce a lot's remaining quantity and return the consumed slice."""
        lot = self.get(lot_id)
        if quantity <= 0:
            raise DataValidationError("quantity", "consumed quantity must be positive")
        if quantity > lot.remaining_quantity:
            raise InsufficientLotQuantityError(lot_id, quantity, lot.remaining_quantity)

        lot.remaining_quantity -= quantity
        if lot.remaining_quantity == 0:
            logger.debug("Lot %s (%s) fully consumed", lot.id, lot.symbol)
        return RealizedPiece(
            lot_id=lot.id,
            quantity=quantity,
            cost_basis=lot.cost_basis_for(quantity),
            acquired_date=lot.acquired_date,
        )

    def total_available(self, owner_id: str, symbol: str) -> Decimal:
        return sum(
            (lot.remaining_quantity for lot in self.list_open_lots(owner_id, symbol)),
            Decimal("0"),
        )

    def weighted_average_cost(self, owner_id: str, symbol: str) -> Decimal:
        """Per-share cost of the shares still held, weighted by remaining quantity."""
        open_lots = self.list_open_lots(owner_id, symbol)
        total_qty = sum((lot.remaining_quantity for lot in open_lots), Decimal("0"))
        if total_qty == 0:
            return Decimal("0")
        total_cost = sum(
            (lot.unit_cost * lot.remaining_quantity for lot in open_lots), Decimal("0")
        )
        return total_cost / total_qty

    def reconcile(
        self, owner_id: str, symbol: str, transactions: Iterable[Transaction]
    ) -> HoldingDiscrepancy | None:
        """Compare open-lot quantity with the owner's claimed net history.

        Diagnostic only: a divergence is logged and returned, never corrected.
        """
        symbol = symbol.strip().upper()
        net = Decimal("0")
        for txn in transactions:
            if txn.owner_id != owner_id or txn.symbol != symbol:
                continue
            if txn.type in ACQUISITION_TYPES:
                net += txn.quantity
            elif txn.type in DISPOSAL_TYPES:
                net -= txn.quantity

        held = self.total_available(owner_id, symbol)
        if held == net:
            return None

        discrepancy = HoldingDiscrepancy(
            owner_id=owner_id,
            symbol=symbol,
            lot_quantity=held,
            transaction_quantity=net,
        )
        logger.warning("Holding reconciliation mismatch: %s", discrepancy.message)
        return discrepancy
