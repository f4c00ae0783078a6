"""Wash-sale detection.

A loss is disallowed when substantially identical shares are acquired within
the window spanning ``window_days`` before through ``window_days`` after the
sale date (both ends inclusive). The disallowed share of the loss is
proportional to the replacement quantity, capped at the quantity sold.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from folio.models.enums import ACQUISITION_TYPES, DISPOSAL_TYPES
from folio.models.transaction import Transaction, WashSaleResult

logger = logging.getLogger(__name__)


class WashSaleDetector:
    """Evaluates loss sales against an owner's trading history in one symbol."""

    def __init__(self, window_days: int = 30):
        self.window_days = window_days

    def in_window(self, sale_date: date, other_date: date) -> bool:
        return abs((other_date - sale_date).days) <= self.window_days

    def evaluate(
        self,
        sale_date: date,
        symbol: str,
        gain_loss: Decimal,
        quantity_sold: Decimal,
        history: Iterable[Transaction],
        excluded_quantities: Mapping[str, Decimal] | None = None,
    ) -> WashSaleResult:
        """Determine how much of a realized loss is disallowed.

        Args:
            gain_loss: Realized gain/loss of the sale. Only negative values are checked.
            history: The owner's transactions (other symbols are ignored).
            excluded_quantities: Shares of each acquisition (keyed by transaction
                id) that are the very shares being sold; they never count as
                replacement shares.
        """
        if gain_loss >= 0 or quantity_sold <= 0:
            return WashSaleResult()

        symbol = symbol.strip().upper()
        excluded = excluded_quantities or {}
        replacements: list[tuple[Transaction, Decimal]] = []
        for txn in history:
            if txn.type not in ACQUISITION_TYPES or txn.symbol != symbol:
                continue
            if not self.in_window(sale_date, txn.date):
                continue
            qty = txn.quantity - excluded.get(txn.id, Decimal("0"))
            if qty > 0:
                replacements.append((txn, qty))

        if not replacements:
            return WashSaleResult()

        replacement_qty = sum((qty for _, qty in replacements), Decimal("0"))
        washed = min(replacement_qty, quantity_sold)
        loss = abs(gain_loss)
        disallowed = min(loss * washed / quantity_sold, loss)

        # Report the nearest replacement, preferring purchases after the sale
        nearest, _ = min(
            replacements,
            key=lambda item: (item[0].date <= sale_date, abs((item[0].date - sale_date).days)),
        )
        days = (nearest.date - sale_date).days

        logger.info(
            "Wash sale on %s %s: %s of %s shares replaced, %s loss disallowed",
            sale_date, symbol, washed, quantity_sold, disallowed,
        )
        return WashSaleResult(
            is_wash_sale=washed > 0,
            disallowed_loss=disallowed,
            replacement_quantity=replacement_qty,
            washed_quantity=washed,
            matching_transaction_ids=[txn.id for txn, _ in replacements],
            matching_buy_id=nearest.id,
            matching_buy_date=nearest.date,
            days_from_sale=days,
        )

    def affected_sales(
        self,
        buy_date: date,
        symbol: str,
        recent_sales: Iterable[Transaction],
        gains_by_sale: Mapping[str, Decimal],
    ) -> list[str]:
        """Ids of loss sales a proposed purchase would turn into wash sales."""
        symbol = symbol.strip().upper()
        affected: list[str] = []
        for sale in recent_sales:
            if sale.symbol != symbol or sale.type not in DISPOSAL_TYPES:
                continue
            if not self.in_window(buy_date, sale.date):
                continue
            if gains_by_sale.get(sale.id, Decimal("0")) < 0:
                affected.append(sale.id)
        return affected


def format_wash_sale_warning(result: WashSaleResult) -> str:
    """Banner text for a washed sale; empty when the sale is not washed."""
    if not result.is_wash_sale:
        return ""
    days = result.days_from_sale or 0
    direction = "after" if days > 0 else "before"
    return (
        f"Wash Sale: ${result.disallowed_loss:,.2f} loss disallowed due to purchase of "
        f"{result.washed_quantity} shares {abs(days)} days {direction} this sale."
    )
