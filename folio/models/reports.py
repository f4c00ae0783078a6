"""Report output models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from folio.models.enums import HoldingPeriod


class HoldingDiscrepancy(BaseModel):
    owner_id: str
    symbol: str
    lot_quantity: Decimal
    transaction_quantity: Decimal

    @property
    def difference(self) -> Decimal:
        return self.lot_quantity - self.transaction_quantity

    @property
    def message(self) -> str:
        return (
            f"{self.symbol} for {self.owner_id}: open lots hold {self.lot_quantity} "
            f"but claimed history nets {self.transaction_quantity} "
            f"(difference {self.difference}) - check for a missing or unclaimed acquisition"
        )


class RealizedGainLine(BaseModel):
    sale_id: str
    lot_id: str
    symbol: str
    sale_date: date
    acquired_date: date
    holding_days: int
    holding_period: HoldingPeriod
    quantity: Decimal
    proceeds: Decimal
    cost_basis: Decimal
    gain_loss: Decimal

    @property
    def gain_percent(self) -> Decimal:
        if self.cost_basis == 0:
            return Decimal("0")
        return self.gain_loss / self.cost_basis * 100


class GainsSummary(BaseModel):
    tax_year: int
    owner_id: str
    lines: list[RealizedGainLine] = Field(default_factory=list)
    total_proceeds: Decimal = Decimal("0")
    total_cost_basis: Decimal = Decimal("0")
    total_gain_loss: Decimal = Decimal("0")
    short_term_gain_loss: Decimal = Decimal("0")
    long_term_gain_loss: Decimal = Decimal("0")
    short_term_count: int = 0
    long_term_count: int = 0
    wash_sale_disallowed: Decimal = Decimal("0")


class AuditEntry(BaseModel):
    timestamp: datetime
    engine: str
    operation: str
    inputs: dict
    output: dict
    notes: str | None = None
