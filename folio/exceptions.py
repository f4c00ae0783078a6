"""Custom exceptions for the Folio accounting engine."""

from decimal import Decimal


class FolioError(Exception):
    """Base exception for accounting engine errors."""


# --- Input validation ---


class DataValidationError(FolioError):
    """Raised when input data fails validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error on '{field}': {message}")


class InvalidTransactionTypeError(DataValidationError):
    """Raised for transaction type strings outside the supported set."""

    def __init__(self, value: str):
        self.value = value
        super().__init__("type", f"unknown transaction type {value!r}")


class InvalidMethodError(DataValidationError):
    """Raised for unrecognized cost-basis method strings."""

    def __init__(self, value: str):
        self.value = value
        super().__init__("method", f"unknown cost-basis method {value!r}")


class InvalidAcquisitionError(DataValidationError):
    """Raised when a transaction cannot open a tax lot."""

    def __init__(self, transaction_id: str, message: str):
        self.transaction_id = transaction_id
        super().__init__("quantity", f"transaction {transaction_id} cannot open a lot: {message}")


class SpecIdMismatchError(DataValidationError):
    """Raised when a specific-identification selection does not fit the sale."""

    def __init__(self, message: str, requested: Decimal | None = None, selected: Decimal | None = None):
        self.requested = requested
        self.selected = selected
        super().__init__("selections", message)


# --- Data consistency ---


class LotNotFoundError(FolioError):
    """Raised when an operation references a lot that doesn't exist."""

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}")


class TransactionNotFoundError(FolioError):
    """Raised when an operation references a transaction that doesn't exist."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class InsufficientLotQuantityError(FolioError):
    """Raised when a consumption requires more shares than remain in a lot."""

    def __init__(self, lot_id: str, requested: Decimal, available: Decimal):
        self.lot_id = lot_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient shares in lot {lot_id}: "
            f"requested={requested}, available={available}"
        )


class InsufficientQuantityError(FolioError):
    """Raised when open lots cannot cover a sale.

    Usually means an acquisition was never imported or claimed. The engine
    never fabricates a lot to cover the gap.
    """

    def __init__(self, symbol: str, requested: Decimal, available: Decimal):
        self.symbol = symbol
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient lots to cover this sale of {requested} {symbol} "
            f"(available={available}, shortfall={self.shortfall}) - check your import history"
        )


class ReconciliationError(FolioError):
    """Raised when lot state diverges from transaction history in strict mode."""

    def __init__(self, message: str):
        super().__init__(f"Reconciliation error: {message}")


class ClaimError(FolioError):
    """Raised when a claim or unclaim would leave the ledger inconsistent."""

    def __init__(self, transaction_id: str, message: str):
        self.transaction_id = transaction_id
        super().__init__(f"Cannot change claim on {transaction_id}: {message}")
