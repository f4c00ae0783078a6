"""Core transaction, tax lot, and allocation models."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from folio.models.enums import (
    ACQUISITION_TYPES,
    DISPOSAL_TYPES,
    CostBasisMethod,
    HoldingPeriod,
    TransactionType,
)


def new_id() -> str:
    return str(uuid4())


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    date: date
    type: TransactionType
    symbol: str
    quantity: Decimal = Field(ge=0)
    price: Decimal = Field(ge=0)
    amount: Decimal | None = None
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    owner_id: str | None = None
    description: str | None = None
    notes: str | None = None
    is_duplicate_flag: bool = False
    duplicate_of_id: str | None = None
    duplicate_score: int | None = None
    wash_sale_flag: bool = False
    wash_sale_amount: Decimal | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: object) -> object:
        if isinstance(value, str):
            return TransactionType.parse(value)
        return value

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        symbol = value.strip().upper()
        if not symbol:
            raise ValueError("symbol must not be empty")
        return symbol

    @model_validator(mode="after")
    def _default_amount(self) -> "Transaction":
        if self.amount is None:
            self.amount = self.quantity * self.price
        return self

    @property
    def is_claimed(self) -> bool:
        return self.owner_id is not None

    @property
    def is_acquisition(self) -> bool:
        return self.type in ACQUISITION_TYPES

    @property
    def is_disposal(self) -> bool:
        return self.type in DISPOSAL_TYPES


class TaxLot(BaseModel):
    id: str = Field(default_factory=new_id)
    transaction_id: str
    owner_id: str
    symbol: str
    quantity: Decimal = Field(ge=0)
    remaining_quantity: Decimal = Field(ge=0)
    cost_basis: Decimal
    acquired_date: date

    @model_validator(mode="after")
    def _remaining_within_original(self) -> "TaxLot":
        if self.remaining_quantity > self.quantity:
            raise ValueError("remaining_quantity cannot exceed quantity")
        return self

    @property
    def unit_cost(self) -> Decimal:
        if self.quantity == 0:
            return Decimal("0")
        return self.cost_basis / self.quantity

    @property
    def is_open(self) -> bool:
        return self.remaining_quantity > 0

    def cost_basis_for(self, quantity: Decimal) -> Decimal:
        """Cost basis attributable to ``quantity`` shares of this lot."""
        if quantity == self.quantity:
            return self.cost_basis
        return self.cost_basis * quantity / self.quantity


class RealizedPiece(BaseModel):
    """A slice of one lot disposed of by a sale.

    The ledger fills the lot-side fields; the allocator adds the sale-side
    proceeds, gain/loss and holding period.
    """

    lot_id: str
    quantity: Decimal
    cost_basis: Decimal
    acquired_date: date
    proceeds: Decimal | None = None
    gain_loss: Decimal | None = None
    holding_period: HoldingPeriod | None = None
    holding_days: int | None = None


class SpecIdSelection(BaseModel):
    lot_id: str
    quantity: Decimal = Field(gt=0)


class AllocationPlan(BaseModel):
    """Pure output of the cost-basis allocator, committed separately."""

    owner_id: str
    symbol: str
    method: CostBasisMethod
    quantity: Decimal
    sale_price: Decimal
    sale_date: date
    pieces: list[RealizedPiece] = Field(default_factory=list)

    @property
    def total_proceeds(self) -> Decimal:
        return sum((p.proceeds or Decimal("0") for p in self.pieces), Decimal("0"))

    @property
    def total_cost_basis(self) -> Decimal:
        return sum((p.cost_basis for p in self.pieces), Decimal("0"))

    @property
    def total_gain_loss(self) -> Decimal:
        return sum((p.gain_loss or Decimal("0") for p in self.pieces), Decimal("0"))

    @property
    def short_term_gain_loss(self) -> Decimal:
        return sum(
            (p.gain_loss or Decimal("0") for p in self.pieces
             if p.holding_period == HoldingPeriod.SHORT_TERM),
            Decimal("0"),
        )

    @property
    def long_term_gain_loss(self) -> Decimal:
        return sum(
            (p.gain_loss or Decimal("0") for p in self.pieces
             if p.holding_period == HoldingPeriod.LONG_TERM),
            Decimal("0"),
        )

    @property
    def holding_period(self) -> HoldingPeriod:
        periods = {p.holding_period for p in self.pieces}
        if periods == {HoldingPeriod.LONG_TERM}:
            return HoldingPeriod.LONG_TERM
        if periods == {HoldingPeriod.SHORT_TERM} or not periods:
            return HoldingPeriod.SHORT_TERM
        return HoldingPeriod.MIXED

    def consumed_by_lot(self) -> dict[str, Decimal]:
        consumed: dict[str, Decimal] = {}
        for piece in self.pieces:
            consumed[piece.lot_id] = consumed.get(piece.lot_id, Decimal("0")) + piece.quantity
        return consumed


class WashSaleResult(BaseModel):
    is_wash_sale: bool = False
    disallowed_loss: Decimal = Decimal("0")
    replacement_quantity: Decimal = Decimal("0")
    washed_quantity: Decimal = Decimal("0")
    matching_transaction_ids: list[str] = Field(default_factory=list)
    matching_buy_id: str | None = None
    matching_buy_date: date | None = None
    days_from_sale: int | None = None


class DuplicateMatch(BaseModel):
    transaction_id: str
    score: int = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)


class SaleResult(BaseModel):
    """Outcome of committing an allocation plan against a sale."""

    sale_id: str
    plan: AllocationPlan
    wash_sale: WashSaleResult

    @property
    def recognized_gain_loss(self) -> Decimal:
        """Gain/loss after adding back the disallowed portion of a washed loss."""
        return self.plan.total_gain_loss + self.wash_sale.disallowed_loss


class RecordResult(BaseModel):
    transaction: Transaction
    lot: TaxLot | None = None
    sale: SaleResult | None = None
    duplicate: DuplicateMatch | None = None
