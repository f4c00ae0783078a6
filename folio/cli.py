"""Typer CLI interface for Folio."""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from folio.config import EngineSettings
from folio.exceptions import DataValidationError, FolioError
from folio.models.enums import CostBasisMethod, TransactionType
from folio.models.transaction import SpecIdSelection, Transaction

app = typer.Typer(
    name="folio",
    help="Folio: tax-lot accounting for a family's pooled brokerage transactions.",
)

DB_OPTION_HELP = "Path to the SQLite database file (default: $FOLIO_DB or ~/.folio/folio.db)"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine decisions to stderr"),
) -> None:
    """Folio: tax-lot accounting for a family's pooled brokerage transactions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _settings(db: Path | None) -> EngineSettings:
    settings = EngineSettings.from_env()
    if db is not None:
        settings = settings.model_copy(update={"db_path": db})
    return settings


def _open_engine(db: Path | None):
    from folio.db.repository import FolioRepository
    from folio.db.schema import create_schema
    from folio.engines.accounting import AccountingEngine

    settings = _settings(db)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = create_schema(settings.db_path)
    return conn, AccountingEngine(FolioRepository(conn), settings)


def _decimal(value: str, field: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise DataValidationError(field, f"{value!r} is not a number") from None


def _parse_date(value: str | None) -> date:
    if value is None:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise DataValidationError("date", f"{value!r} is not a YYYY-MM-DD date") from None


def _parse_selections(values: list[str] | None) -> list[SpecIdSelection] | None:
    """Parse repeated ``--lot LOT_ID:QUANTITY`` options."""
    if not values:
        return None
    selections = []
    for value in values:
        lot_id, sep, qty = value.rpartition(":")
        if not sep or not lot_id:
            raise DataValidationError("lot", f"expected LOT_ID:QUANTITY, got {value!r}")
        quantity = _decimal(qty, "lot")
        if quantity <= 0:
            raise DataValidationError("lot", f"selected quantity must be positive in {value!r}")
        selections.append(SpecIdSelection(lot_id=lot_id, quantity=quantity))
    return selections


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(1)


def _fmt(value: Decimal) -> str:
    return f"{value:,.2f}"


@app.command()
def add(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    txn_type: str = typer.Option(..., "--type", "-t", help="BUY, SELL, DIVIDEND, TRANSFER_IN or TRANSFER_OUT"),
    quantity: str = typer.Option(..., "--quantity", "-q", help="Number of shares"),
    price: str = typer.Option(..., "--price", "-p", help="Price per share"),
    on: str | None = typer.Option(None, "--date", "-d", help="Trade date (YYYY-MM-DD), default today"),
    amount: str | None = typer.Option(None, "--amount", help="Gross amount, default quantity x price"),
    fees: str = typer.Option("0", "--fees", help="Fees paid"),
    owner: str | None = typer.Option(None, "--owner", "-o", help="Claim immediately for this owner"),
    method: str | None = typer.Option(None, "--method", "-m", help="Cost-basis method for sales"),
    lot: list[str] | None = typer.Option(None, "--lot", help="SPECID selection LOT_ID:QUANTITY (repeatable)"),
    description: str | None = typer.Option(None, "--description", help="Free-text description"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Record a transaction.

    Unclaimed transactions are checked for likely duplicates. With --owner the
    transaction is claimed at once: buys open a tax lot and sells are
    allocated to lots and checked for wash sales.
    """
    from folio.engines.wash_sale import format_wash_sale_warning

    try:
        txn = Transaction(
            date=_parse_date(on),
            type=TransactionType.parse(txn_type),
            symbol=symbol,
            quantity=_decimal(quantity, "quantity"),
            price=_decimal(price, "price"),
            amount=_decimal(amount, "amount") if amount is not None else None,
            fees=_decimal(fees, "fees"),
            owner_id=owner,
            description=description,
        )
        selections = _parse_selections(lot)
        conn, engine = _open_engine(db)
        try:
            result = engine.record_transaction(txn, method=method, selections=selections)
        finally:
            conn.close()
    except (FolioError, ValidationError) as exc:
        _fail(exc)

    typer.echo(f"Recorded {result.transaction.type.value} {result.transaction.symbol}: {result.transaction.id}")
    if result.duplicate:
        typer.echo(
            f"Warning: likely duplicate of {result.duplicate.transaction_id} "
            f"(score {result.duplicate.score}: {', '.join(result.duplicate.reasons)})",
            err=True,
        )
    if result.lot:
        typer.echo(f"  Opened lot {result.lot.id} ({result.lot.quantity} @ basis ${_fmt(result.lot.cost_basis)})")
    if result.sale:
        typer.echo(f"  Realized gain/loss: ${_fmt(result.sale.plan.total_gain_loss)}")
        warning = format_wash_sale_warning(result.sale.wash_sale)
        if warning:
            typer.echo(f"  {warning}", err=True)


@app.command()
def claim(
    ids: list[str] = typer.Argument(..., help="Transaction IDs to claim"),
    owner: str = typer.Option(..., "--owner", "-o", help="Owner claiming the transactions"),
    method: str | None = typer.Option(None, "--method", "-m", help="Cost-basis method for sales"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Claim unclaimed transactions into an owner's ledger."""
    try:
        if method is not None:
            CostBasisMethod.parse(method)
        conn, engine = _open_engine(db)
        try:
            count = engine.claim(ids, owner, method=method)
        finally:
            conn.close()
    except FolioError as exc:
        _fail(exc)
    typer.echo(f"Claimed {count} transaction(s) for {owner}")


@app.command()
def unclaim(
    ids: list[str] = typer.Argument(..., help="Transaction IDs to unclaim"),
    owner: str = typer.Option(..., "--owner", "-o", help="Current owner"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Return an owner's transactions to the unclaimed pool."""
    try:
        conn, engine = _open_engine(db)
        try:
            count = engine.unclaim(ids, owner)
        finally:
            conn.close()
    except FolioError as exc:
        _fail(exc)
    typer.echo(f"Unclaimed {count} transaction(s)")


@app.command()
def preview(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    quantity: str = typer.Argument(..., help="Shares to sell"),
    price: str = typer.Argument(..., help="Sale price per share"),
    owner: str = typer.Option(..., "--owner", "-o", help="Selling owner"),
    on: str | None = typer.Option(None, "--date", "-d", help="Sale date (YYYY-MM-DD), default today"),
    method: str | None = typer.Option(None, "--method", "-m", help="FIFO, LIFO, HIFO or SPECID"),
    lot: list[str] | None = typer.Option(None, "--lot", help="SPECID selection LOT_ID:QUANTITY (repeatable)"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Preview the lots a sale would consume, without committing anything."""
    try:
        conn, engine = _open_engine(db)
        try:
            plan = engine.plan_sale(
                owner,
                symbol,
                _decimal(quantity, "quantity"),
                _decimal(price, "price"),
                _parse_date(on),
                method,
                _parse_selections(lot),
            )
        finally:
            conn.close()
    except FolioError as exc:
        _fail(exc)

    table = Table(title=f"{plan.method.label}: sell {plan.quantity} {plan.symbol}")
    table.add_column("Lot")
    table.add_column("Acquired")
    table.add_column("Qty", justify="right")
    table.add_column("Basis", justify="right")
    table.add_column("Gain/Loss", justify="right")
    table.add_column("Term")
    for piece in plan.pieces:
        table.add_row(
            piece.lot_id,
            piece.acquired_date.isoformat(),
            str(piece.quantity),
            _fmt(piece.cost_basis),
            _fmt(piece.gain_loss),
            piece.holding_period.value,
        )
    Console().print(table)
    typer.echo(f"Total gain/loss: ${_fmt(plan.total_gain_loss)} ({plan.holding_period.value})")


@app.command()
def lots(
    owner: str = typer.Option(..., "--owner", "-o", help="Lot owner"),
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    show_closed: bool = typer.Option(False, "--all", help="Include fully consumed lots"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """List an owner's tax lots for a symbol."""
    conn, engine = _open_engine(db)
    try:
        rows = engine.repo.get_lots(owner, symbol) if show_closed else engine.open_lots(owner, symbol)
        average = engine.average_cost(owner, symbol)
        available = engine.available_quantity(owner, symbol)
    finally:
        conn.close()

    if not rows:
        typer.echo(f"No lots for {symbol.upper()} owned by {owner}")
        return

    table = Table(title=f"{symbol.upper()} lots for {owner}")
    table.add_column("Lot")
    table.add_column("Acquired")
    table.add_column("Quantity", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Cost basis", justify="right")
    table.add_column("Unit cost", justify="right")
    for row in rows:
        table.add_row(
            row.id,
            row.acquired_date.isoformat(),
            str(row.quantity),
            str(row.remaining_quantity),
            _fmt(row.cost_basis),
            _fmt(row.unit_cost),
        )
    Console().print(table)
    typer.echo(f"Available: {available} shares, average cost ${_fmt(average)}")


@app.command()
def duplicates(
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Show the duplicate review queue."""
    conn, engine = _open_engine(db)
    try:
        queue = engine.duplicate_review_queue()
    finally:
        conn.close()

    if not queue:
        typer.echo("No flagged duplicates.")
        return

    table = Table(title="Likely duplicates")
    table.add_column("Transaction")
    table.add_column("Date")
    table.add_column("Type")
    table.add_column("Symbol")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Duplicate of")
    table.add_column("Score", justify="right")
    for txn, partner in queue:
        table.add_row(
            txn.id,
            txn.date.isoformat(),
            txn.type.value,
            txn.symbol,
            str(txn.quantity),
            str(txn.price),
            partner.id if partner else "-",
            str(txn.duplicate_score or ""),
        )
    Console().print(table)
    typer.echo("Delete a copy with `folio delete <id>`.")


@app.command()
def delete(
    txn_id: str = typer.Argument(..., help="Unclaimed transaction ID"),
    duplicate_only: bool = typer.Option(
        True, "--duplicate-only/--any", help="Only delete transactions flagged as duplicates"
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Delete an unclaimed transaction and resolve duplicate flags that point at it."""
    try:
        conn, engine = _open_engine(db)
        try:
            if duplicate_only:
                engine.delete_duplicate(txn_id)
            else:
                engine.delete_transaction(txn_id)
        finally:
            conn.close()
    except FolioError as exc:
        _fail(exc)
    typer.echo(f"Deleted {txn_id}")


@app.command()
def reconcile(
    owner: str | None = typer.Option(None, "--owner", "-o", help="Limit to one owner"),
    symbol: str | None = typer.Option(None, "--symbol", "-s", help="Limit to one symbol"),
    strict: bool = typer.Option(False, "--strict", help="Exit with an error on any mismatch"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Check open lots against claimed transaction history."""
    from folio.engines.reconciliation import HoldingsReconciler

    conn, engine = _open_engine(db)
    try:
        discrepancies = HoldingsReconciler(engine.repo).reconcile(owner, symbol)
    finally:
        conn.close()

    if not discrepancies:
        typer.echo("Holdings reconcile: open lots match transaction history.")
        return

    typer.echo("Warning: manual reconciliation required", err=True)
    for d in discrepancies:
        typer.echo(f"  - {d.message}", err=True)
    if strict:
        raise typer.Exit(1)


@app.command()
def gains(
    year: int = typer.Argument(..., help="Tax year"),
    owner: str = typer.Option(..., "--owner", "-o", help="Owner"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Summarize realized gains and losses for a tax year."""
    from folio.engines.gains import GainsReportEngine

    conn, engine = _open_engine(db)
    try:
        summary = GainsReportEngine(engine.repo).summarize(owner, year)
    finally:
        conn.close()

    typer.echo(f"Realized gains for {owner}, {year}:")
    typer.echo(f"  Short-term ({summary.short_term_count}): ${_fmt(summary.short_term_gain_loss)}")
    typer.echo(f"  Long-term ({summary.long_term_count}):  ${_fmt(summary.long_term_gain_loss)}")
    typer.echo(f"  Total proceeds:   ${_fmt(summary.total_proceeds)}")
    typer.echo(f"  Total cost basis: ${_fmt(summary.total_cost_basis)}")
    typer.echo(f"  Total gain/loss:  ${_fmt(summary.total_gain_loss)}")
    if summary.wash_sale_disallowed:
        typer.echo(f"  Wash-sale loss disallowed: ${_fmt(summary.wash_sale_disallowed)}")


@app.command(name="wash-check")
def wash_check(
    symbol: str = typer.Argument(..., help="Ticker symbol you plan to buy"),
    owner: str = typer.Option(..., "--owner", "-o", help="Buying owner"),
    on: str | None = typer.Option(None, "--date", "-d", help="Planned buy date (YYYY-MM-DD), default today"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Warn when a planned purchase would wash recent loss sales."""
    try:
        buy_date = _parse_date(on)
        conn, engine = _open_engine(db)
        try:
            affected = engine.would_trigger_wash_sale(buy_date, symbol, owner)
        finally:
            conn.close()
    except FolioError as exc:
        _fail(exc)

    if not affected:
        typer.echo(f"No wash-sale risk buying {symbol.upper()} on {buy_date}.")
        return
    typer.echo(f"Buying {symbol.upper()} on {buy_date} would wash {len(affected)} loss sale(s):")
    for sale_id in affected:
        typer.echo(f"  - {sale_id}")
