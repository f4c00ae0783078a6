"""Realized gains report for a tax year."""

from datetime import date
from decimal import Decimal

from folio.db.repository import FolioRepository
from folio.models.enums import HoldingPeriod
from folio.models.reports import GainsSummary, RealizedGainLine


class GainsReportEngine:
    """Summarizes committed lot disposals into short- and long-term totals."""

    def __init__(self, repo: FolioRepository):
        self.repo = repo

    def summarize(self, owner_id: str, tax_year: int) -> GainsSummary:
        rows = self.repo.get_disposals(owner_id=owner_id, tax_year=tax_year)
        lines = [
            RealizedGainLine(
                sale_id=row["sale_id"],
                lot_id=row["lot_id"],
                symbol=row["symbol"],
                sale_date=date.fromisoformat(row["sale_date"]),
                acquired_date=date.fromisoformat(row["acquired_date"]),
                holding_days=row["holding_days"],
                holding_period=HoldingPeriod(row["holding_period"]),
                quantity=Decimal(row["quantity"]),
                proceeds=Decimal(row["proceeds"]),
                cost_basis=Decimal(row["cost_basis"]),
                gain_loss=Decimal(row["gain_loss"]),
            )
            for row in rows
        ]
        short = [line for line in lines if line.holding_period == HoldingPeriod.SHORT_TERM]
        long_ = [line for line in lines if line.holding_period == HoldingPeriod.LONG_TERM]

        # Disallowed amounts live on the sale, counted once per sale
        disallowed = Decimal("0")
        for sale_id in {line.sale_id for line in lines}:
            sale = self.repo.get_transaction(sale_id)
            if sale is not None and sale.wash_sale_flag and sale.wash_sale_amount:
                disallowed += sale.wash_sale_amount

        return GainsSummary(
            tax_year=tax_year,
            owner_id=owner_id,
            lines=lines,
            total_proceeds=sum((line.proceeds for line in lines), Decimal("0")),
            total_cost_basis=sum((line.cost_basis for line in lines), Decimal("0")),
            total_gain_loss=sum((line.gain_loss for line in lines), Decimal("0")),
            short_term_gain_loss=sum((line.gain_loss for line in short), Decimal("0")),
            long_term_gain_loss=sum((line.gain_loss for line in long_), Decimal("0")),
            short_term_count=len(short),
            long_term_count=len(long_),
            wash_sale_disallowed=disallowed,
        )
