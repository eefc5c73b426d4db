"""Command-line interface for the statement ledger."""

import argparse
import csv
import json
import sys
import warnings
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from statement_ledger import __version__
from statement_ledger.config import Config, ConfigError, load_config
from statement_ledger.utils.decimal_utils import format_brl
from statement_ledger.utils.logging_config import LogContext, get_logger, setup_logging

# Load environment variables from .env file (if it exists)
load_dotenv()

console = Console()
logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="statement-ledger",
        description=(
            "Build a validated ledger from Brazilian bank statement exports "
            "and bank app notifications"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --input-dir ./downloads
  %(prog)s -i ./downloads --notifications notifications.json -o ledger/ledger.csv
  %(prog)s -i ./downloads --existing ledger/ledger.csv --dry-run
  %(prog)s --self-check
        """,
    )

    # Version
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Inputs
    parser.add_argument(
        "-i", "--input-dir",
        type=Path,
        default=None,
        help="Directory containing statement and invoice exports",
    )

    parser.add_argument(
        "--notifications",
        type=Path,
        default=None,
        help="JSON file holding a list of captured bank app notifications",
    )

    parser.add_argument(
        "--existing",
        type=Path,
        default=None,
        help="Previously exported ledger CSV; records it holds are skipped",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Ledger CSV path (default: ledger/YYYYMMDD_HHMMSS/ledger.csv)",
    )

    # Configuration
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=Path("config"),
        help="Base config directory (default: ./config)",
    )

    # Processing options
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Abort on the first malformed row instead of skipping it",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate without writing output",
    )

    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Only validate configuration files, don't process data",
    )

    parser.add_argument(
        "--self-check",
        action="store_true",
        help="Check amount and date normalization against known cases",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -v for INFO, -vv for DEBUG)",
    )

    return parser


def get_log_level(verbosity: int) -> str:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags.

    Returns:
        Log level string.
    """
    if verbosity >= 2:
        return "DEBUG"
    elif verbosity >= 1:
        return "INFO"
    else:
        return "WARNING"


def generate_default_output_path() -> Path:
    """Generate default output path with timestamp.

    Returns:
        Path with format ledger/YYYYMMDD_HHMMSS/ledger.csv
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(f"ledger/{timestamp}/ledger.csv")


def validate_output_path(path: Path, base_dir: Path | None = None) -> Path:
    """Validate that output path is within allowed directory.

    Prevents path traversal by ensuring the resolved path is within the base
    directory (defaults to current working directory).

    Args:
        path: The path to validate.
        base_dir: Base directory to constrain paths within (default: cwd).

    Returns:
        The resolved, validated path.

    Raises:
        ValueError: If the path escapes the allowed directory.
    """
    if base_dir is None:
        base_dir = Path.cwd()

    resolved_base = base_dir.resolve()
    resolved_path = (base_dir / path).resolve()

    try:
        resolved_path.relative_to(resolved_base)
    except ValueError:
        raise ValueError(
            f"Invalid path: '{path}' escapes the allowed directory. "
            f"Paths must be within '{resolved_base}'"
        ) from None

    return resolved_path


def validate_config(args: argparse.Namespace) -> int:
    """Validate configuration files.

    Args:
        args: Parsed command-line arguments.

    Returns:
        0 if valid, 1 if errors found.
    """
    console.print("[bold]Validating configuration files...[/bold]\n")

    errors = []
    warnings_found = []

    config_dir = args.config_dir
    if not config_dir.exists():
        warnings_found.append(f"Config directory not found: {config_dir}")

    for name in ("settings.yaml", "categories.yaml", "institutions.yaml", "corrections.yaml"):
        path = config_dir / name
        if path.exists():
            console.print(f"[green]✓[/green] {path}")
        else:
            warnings_found.append(f"{path} not found, built-in defaults apply")

    try:
        config = load_config(config_dir=config_dir)
        # Resolving the zone surfaces an unknown timezone name here
        config.notifications.tzinfo
        console.print("\n[green]✓[/green] Configuration loaded successfully")
        console.print(f"  - {len(config.category_rules)} category rules")
        console.print(f"  - {len(config.registry)} institutions")
        console.print(f"  - {len(config.manual_corrections)} manual corrections")
        console.print(f"  - fallback policy: {config.detection.fallback_policy}")
    except ConfigError as e:
        errors.append(f"Failed to load configuration: {e}")

    if warnings_found:
        console.print("\n[yellow]Warnings:[/yellow]")
        for w in warnings_found:
            console.print(f"  - {w}")

    if errors:
        console.print("\n[red]Errors:[/red]")
        for err in errors:
            console.print(f"  - {err}")
        return 1

    console.print("\n[green]Configuration is valid.[/green]")
    return 0


def run_self_check_command() -> int:
    """Run the normalization self-check and report the result."""
    from statement_ledger.parsers import run_self_check

    failures = run_self_check()
    if failures:
        console.print(f"[red]Self-check failed ({len(failures)} cases):[/red]")
        for failure in failures:
            console.print(f"  - {failure}")
        return 1

    console.print("[green]Self-check passed.[/green]")
    return 0


def load_notifications(path: Path, recorder=None) -> list:
    """Load captured notifications from a JSON file.

    Events that cannot be read (e.g. a non-numeric timestamp) are skipped and
    recorded as parse errors; the rest of the file is still loaded.

    Args:
        path: JSON file with a list of notification objects.
        recorder: Audit recorder receiving skipped events.

    Returns:
        List of Notification objects.

    Raises:
        ValueError: If the file is not a JSON list.
    """
    from statement_ledger.exceptions import ParseError
    from statement_ledger.models import Notification

    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of notifications")

    notifications = []
    for index, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            continue
        try:
            notifications.append(Notification.from_dict(item))
        except ParseError as e:
            error = e.at_row(index, e.source or path.name)
            logger.warning(f"Skipping notification {index} in {path.name}: {e}")
            if recorder is not None:
                recorder.start_notification(error.source)
                recorder.record_parse_error(error)
    return notifications


def display_summary(
    recorder,
    months: list,
    ledger_size: int,
    errors: list[str],
    match_pct=None,
) -> None:
    """Display processing summary.

    Args:
        recorder: Batch AuditRecorder.
        months: MonthlyTotals per period.
        ledger_size: Number of validated transactions.
        errors: File-level error messages.
        match_pct: Average statement/invoice match percentage, if any month compared.
    """
    console.print("\n[bold]Processing Summary[/bold]")
    console.print(f"  Files processed: {recorder.files_processed}")
    console.print(f"  Notifications processed: {recorder.notifications_processed}")
    console.print(f"  Rows included: {recorder.rows_included}")
    console.print(f"  Rows excluded: {recorder.rows_excluded}")
    console.print(f"  Ledger transactions: {ledger_size}")
    if match_pct is not None:
        console.print(f"  Statement/invoice match: {match_pct}%")

    if recorder.exclusion_reasons:
        console.print("\n[bold]Exclusions[/bold]")
        for reason, count in sorted(recorder.exclusion_reasons.items()):
            console.print(f"  {reason}: {count}")

    if months:
        table = Table(title="Monthly Totals")
        table.add_column("Month")
        table.add_column("Income", justify="right")
        table.add_column("Expense", justify="right")
        table.add_column("Balance", justify="right")
        table.add_column("Rows", justify="right")
        for month in months:
            table.add_row(
                month.period + (" *" if month.corrected else ""),
                format_brl(month.income),
                format_brl(month.expense),
                format_brl(month.balance),
                str(month.transaction_count),
            )
        console.print()
        console.print(table)
        if any(month.corrected for month in months):
            console.print("[dim]* manual correction applied[/dim]")

    if recorder.ambiguous_files:
        console.print(
            f"\n[yellow]Format guessed, please confirm ({len(recorder.ambiguous_files)}):[/yellow]"
        )
        for name in recorder.ambiguous_files:
            console.print(f"  - {name}")

    other_warnings = [w for w in recorder.warnings if "format guessed" not in w]
    if other_warnings:
        console.print(f"\n[yellow]Warnings ({len(other_warnings)}):[/yellow]")
        for w in other_warnings[:10]:
            console.print(f"  - {w}")
        if len(other_warnings) > 10:
            console.print(f"  ... and {len(other_warnings) - 10} more")

    if recorder.row_errors:
        console.print(f"\n[yellow]Rows skipped ({len(recorder.row_errors)}):[/yellow]")
        for row_error in recorder.row_errors[:10]:
            console.print(f"  - {row_error.source} row {row_error.row_index}: {row_error.message}")
        if len(recorder.row_errors) > 10:
            console.print(f"  ... and {len(recorder.row_errors) - 10} more")

    if errors:
        console.print(f"\n[red]Errors ({len(errors)}):[/red]")
        for e in errors[:10]:
            console.print(f"  - {e}")
        if len(errors) > 10:
            console.print(f"  ... and {len(errors) - 10} more")


def create_progress() -> Progress:
    """Create a progress display.

    Returns:
        Rich Progress instance.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    )


def main() -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args()

    if args.self_check:
        return run_self_check_command()

    # Validate only mode
    if args.validate_only:
        setup_logging(level=get_log_level(args.verbose), log_file=None, console_output=args.verbose > 0)
        return validate_config(args)

    if args.input_dir is None and args.notifications is None:
        console.print("[red]Error: --input-dir or --notifications is required[/red]")
        parser.print_usage()
        return 1

    if args.input_dir is not None and not args.input_dir.is_dir():
        console.print(f"[red]Error: Not a directory: {args.input_dir}[/red]")
        return 1

    if args.output is None:
        args.output = generate_default_output_path()
        console.print(f"[dim]Using default output: {args.output}[/dim]")

    try:
        output_path = validate_output_path(args.output)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    # Load configuration
    try:
        config: Config = load_config(config_dir=args.config_dir)
        tz = config.notifications.tzinfo
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Run with --validate-only to check configuration files.")
        return 1

    if args.strict:
        config.strict = True

    log_level = get_log_level(args.verbose) if args.verbose else config.logging.level
    setup_logging(level=log_level, log_file=config.logging.file, console_output=args.verbose > 0)

    console.print(f"[bold]Statement Ledger v{__version__}[/bold]\n")
    logger.debug(f"Notification timezone: {tz}")

    from statement_ledger.exceptions import (
        FormatUnrecognizedError,
        FormatUnrecognizedWarning,
        LedgerError,
        ParseError,
    )
    from statement_ledger.models import CandidateTransaction, StatementFile
    from statement_ledger.output import LedgerExporter, load_ledger
    from statement_ledger.parsers import NotificationParser, StatementParser, discover_files
    from statement_ledger.processing import (
        AuditRecorder,
        TransactionValidator,
        average_match_pct,
        exclude_already_stored,
        monthly_totals,
        reconcile_statement_and_invoice,
    )

    statement_parser = StatementParser.from_config(config)
    notification_parser = NotificationParser.from_config(config)
    validator = TransactionValidator(config.validation)

    batch = AuditRecorder()
    error_list: list[str] = []
    candidates: list[CandidateTransaction] = []

    # Statement files
    files: list[Path] = []
    if args.input_dir is not None:
        with console.status("[bold green]Discovering files..."):
            files = discover_files(args.input_dir)
        console.print(f"Found {len(files)} files to process")

    if files:
        with create_progress() as progress:
            task = progress.add_task("Parsing files...", total=len(files))

            for file_path in files:
                progress.update(task, advance=1)
                file_recorder = AuditRecorder()
                try:
                    statement_file = StatementFile.read(file_path)
                    # Unconfident guesses are reported through the recorder
                    with warnings.catch_warnings(), LogContext(logger, "parse", file=file_path.name):
                        warnings.simplefilter("ignore", FormatUnrecognizedWarning)
                        parsed = statement_parser.parse_file(statement_file, file_recorder)
                except FormatUnrecognizedError as e:
                    error_list.append(str(e))
                    logger.warning(str(e))
                    continue
                except ParseError as e:
                    # Only raised in strict mode
                    console.print(f"[red]Error: {file_path.name}: {e}[/red]")
                    return 1
                except (LedgerError, csv.Error, OSError) as e:
                    error_msg = f"{file_path.name}: {e}"
                    if config.strict:
                        console.print(f"[red]Error: {error_msg}[/red]")
                        return 1
                    error_list.append(error_msg)
                    logger.error(error_msg)
                    continue

                candidates.extend(parsed)
                batch.merge(file_recorder)

    # Notifications
    if args.notifications is not None:
        notification_recorder = AuditRecorder()
        try:
            notifications = load_notifications(args.notifications, notification_recorder)
        except (OSError, ValueError) as e:
            console.print(f"[red]Error: Could not read notifications: {e}[/red]")
            return 1

        for notification in notifications:
            candidate = notification_parser.parse(notification, notification_recorder)
            if candidate is not None:
                candidates.append(candidate)
        batch.merge(notification_recorder)
        console.print(f"Processed {len(notifications)} notifications")

    with console.status("[bold green]Validating transactions..."):
        ledger = validator.validate(candidates, batch)

    if args.existing is not None:
        try:
            stored = load_ledger(args.existing)
        except (OSError, ParseError) as e:
            console.print(f"[red]Error: Could not read existing ledger: {e}[/red]")
            return 1
        ledger = exclude_already_stored(
            ledger, stored, batch, tolerance=config.validation.amount_tolerance
        )

    months = monthly_totals(ledger, config.manual_corrections)
    reconciliation = reconcile_statement_and_invoice(ledger, batch)

    # Generate output (unless dry run)
    if not args.dry_run:
        exporter = LedgerExporter()
        exporter.export(output_path, ledger)
        exporter.export_monthly(output_path.with_name(f"{output_path.stem}_monthly.csv"), months)
        exporter.export_audit(output_path.with_name(f"{output_path.stem}_audit.json"), batch)
        console.print(f"\n[green]Ledger written to {output_path.parent}[/green]")
    else:
        console.print("\n[yellow]Dry run - no output generated[/yellow]")

    display_summary(batch, months, len(ledger), error_list, average_match_pct(reconciliation))

    return 0


if __name__ == "__main__":
    sys.exit(main())
