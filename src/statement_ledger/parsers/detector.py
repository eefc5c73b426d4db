"""Statement format detection and file discovery module."""

import csv
import unicodedata
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from statement_ledger.config import FALLBACK_REJECT, DetectionConfig
from statement_ledger.exceptions import FormatUnrecognizedError, FormatUnrecognizedWarning
from statement_ledger.models.transaction import StatementFormat
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = [".csv", ".txt"]

# Declared MIME types that can never be a delimited text export
NON_TEXT_MIME_PREFIXES = ("application/pdf", "image/", "audio/", "video/", "application/zip")

DATE_HEADERS = {"data", "date", "dt"}
DESCRIPTION_HEADERS = {
    "descricao", "description", "historico", "title", "titulo", "lancamento", "estabelecimento",
}
VALUE_HEADERS = {"valor", "value", "amount", "quantia"}
IDENTIFIER_HEADERS = {"identificador", "identifier", "id"}

INVOICE_HEADER = ["date", "title", "amount"]


def normalize_header(cell: str) -> str:
    """Lowercase a header cell and strip accents, BOM and quotes."""
    text = cell.replace("\ufeff", "").strip().strip('"').strip().lower()
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def split_header(line: str) -> list[str]:
    """Split a header line on the delimiter it most likely uses."""
    line = line.replace("\ufeff", "")
    try:
        delimiter = csv.Sniffer().sniff(line, delimiters=",;\t").delimiter
    except csv.Error:
        delimiter = max([",", ";", "\t"], key=line.count)
    try:
        return next(csv.reader([line], delimiter=delimiter), [])
    except csv.Error:
        # Unreadable header line, e.g. a field over the csv size limit
        return []


@dataclass(frozen=True)
class FormatDetection:
    """Outcome of format detection for one file.

    Attributes:
        format: How the file's amounts are to be interpreted.
        confident: False when the result is the generic fallback guess and
            should be confirmed by the user.
        reason: Which rule decided the format (for logs and the audit).
    """

    format: StatementFormat
    confident: bool
    reason: str


@dataclass(frozen=True)
class _NameRule:
    reason: str
    predicate: Callable[[str], bool]
    format: StatementFormat


class FormatDetector:
    """Classifies statement files as bank statement, invoice or generic CSV.

    Filename rules are evaluated top to bottom and the first match wins. With
    no filename match the header line decides; anything still unrecognized
    falls back to ``generic_csv`` (amounts read as reais) with
    ``confident=False``, unless the configured policy is ``reject``.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DetectionConfig()
        self._name_rules = self._build_name_rules()

    def _build_name_rules(self) -> list[_NameRule]:
        rules: list[_NameRule] = []
        for prefix in self.config.statement_prefixes:
            rules.append(
                _NameRule(
                    reason=f"filename prefix {prefix!r}",
                    predicate=lambda name, p=prefix: name.startswith(p),
                    format=StatementFormat.BANK_STATEMENT,
                )
            )
        for prefix in self.config.invoice_prefixes:
            rules.append(
                _NameRule(
                    reason=f"filename prefix {prefix!r}",
                    predicate=lambda name, p=prefix: name.startswith(p),
                    format=StatementFormat.INVOICE,
                )
            )
        for keyword in self.config.invoice_keywords:
            rules.append(
                _NameRule(
                    reason=f"filename keyword {keyword!r}",
                    predicate=lambda name, k=keyword.lower(): k in name.lower(),
                    format=StatementFormat.INVOICE,
                )
            )
        return rules

    def detect(
        self,
        file_name: str,
        mime_type: Optional[str] = None,
        header: Optional[str] = None,
    ) -> FormatDetection:
        """Classify a file.

        Args:
            file_name: Name of the file (without directories).
            mime_type: Declared MIME type, if any.
            header: First non-blank content line, if available.

        Returns:
            The detected format and whether the detection is confident.

        Raises:
            FormatUnrecognizedError: If the file is unrecognized and the
                fallback policy is ``reject``.
        """
        base_name = Path(file_name).name

        if mime_type and mime_type.lower().startswith(NON_TEXT_MIME_PREFIXES):
            return self._fallback(base_name, f"non-text MIME type {mime_type!r}")

        for rule in self._name_rules:
            if rule.predicate(base_name):
                logger.debug(f"{base_name}: {rule.format.value} by {rule.reason}")
                return FormatDetection(rule.format, True, rule.reason)

        if header:
            detection = self._detect_from_header(header)
            if detection is not None:
                logger.debug(f"{base_name}: {detection.format.value} by {detection.reason}")
                return detection

        return self._fallback(base_name, "no filename or header rule matched")

    def _detect_from_header(self, header: str) -> Optional[FormatDetection]:
        columns = [normalize_header(cell) for cell in split_header(header)]
        column_set = set(columns)

        has_date = bool(column_set & DATE_HEADERS)
        has_description = bool(column_set & DESCRIPTION_HEADERS)
        has_value = bool(column_set & VALUE_HEADERS)

        if has_date and has_value and column_set & IDENTIFIER_HEADERS:
            return FormatDetection(StatementFormat.BANK_STATEMENT, True, "statement header")
        if columns == INVOICE_HEADER:
            return FormatDetection(StatementFormat.INVOICE, True, "invoice header")
        if len(columns) == 3 and has_date and has_description and has_value:
            return FormatDetection(StatementFormat.GENERIC_CSV, True, "date/description/value header")
        return None

    def _fallback(self, file_name: str, reason: str) -> FormatDetection:
        message = (
            f"Could not classify {file_name} ({reason}); "
            f"amounts will be read as reais, please confirm"
        )
        if self.config.fallback_policy == FALLBACK_REJECT:
            raise FormatUnrecognizedError(message, file_name=file_name)

        warnings.warn(message, FormatUnrecognizedWarning, stacklevel=3)
        logger.warning(message)
        return FormatDetection(StatementFormat.GENERIC_CSV, False, reason)


def discover_files(directory: Path) -> list[Path]:
    """Discover all statement files in a directory.

    Args:
        directory: Directory to search.

    Returns:
        Sorted list of file paths that can potentially be parsed.
    """
    if not directory.exists() or not directory.is_dir():
        logger.warning(f"Directory not found or not a directory: {directory}")
        return []

    files: list[Path] = []
    supported = set(SUPPORTED_EXTENSIONS)

    resolved_directory = directory.resolve()

    for file_path in directory.rglob("*"):
        if file_path.is_file() and file_path.suffix.lower() in supported:
            # Symlinks must not lead outside the target directory
            try:
                file_path.resolve().relative_to(resolved_directory)
            except ValueError:
                logger.warning(
                    f"Skipping file outside target directory (symlink traversal): {file_path}"
                )
                continue
            except OSError as e:
                logger.warning(f"Skipping file with invalid path: {file_path}: {e}")
                continue
            files.append(file_path)

    files.sort(key=lambda p: p.name.lower())

    logger.info(f"Discovered {len(files)} potential files in {directory}")
    return files
