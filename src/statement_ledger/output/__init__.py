"""CSV and JSON output for the validated ledger."""

from statement_ledger.output.csv_exporter import LedgerExporter, load_ledger

__all__ = ["LedgerExporter", "load_ledger"]
