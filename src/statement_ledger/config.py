"""Configuration loading and validation for the statement ledger."""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from statement_ledger.exceptions import ConfigError
from statement_ledger.models.category import CategoryRule, default_category_rules
from statement_ledger.models.institution import TemplateRegistry, default_registry
from statement_ledger.models.report import ManualCorrection
from statement_ledger.utils.logging_config import DEFAULT_LOG_FILE, get_logger

logger = get_logger(__name__)

__all__ = [
    "Config",
    "ConfigError",
    "DetectionConfig",
    "LoggingConfig",
    "NotificationConfig",
    "ValidationConfig",
    "load_config",
    "load_yaml_file",
]

FALLBACK_GENERIC_CSV = "generic_csv"
FALLBACK_REJECT = "reject"
FALLBACK_POLICIES = (FALLBACK_GENERIC_CSV, FALLBACK_REJECT)

# Defaults for DetectionConfig
DEFAULT_STATEMENT_PREFIXES = ["NU_"]
DEFAULT_INVOICE_PREFIXES = ["Nubank_"]
DEFAULT_INVOICE_KEYWORDS = ["fatura", "cartao", "cartão", "invoice"]

# Defaults for ValidationConfig
DEFAULT_NON_COMPLETED_MARKERS = [
    "não concluída", "não concluida", "nao concluida",
    "cancelada", "cancelado", "cancelled", "canceled",
    "estornada", "estornado", "estorno", "reversed",
    "não processada", "nao processada",
    "falha", "failed", "rejected", "rejeitada", "rejeitado",
    "pendente",
]
DEFAULT_TRANSFER_KEYWORDS = ["transferência", "transferencia", "pix", "ted", "doc"]
DEFAULT_REVERSAL_KEYWORDS = ["estorno", "estornado", "estornada"]
DEFAULT_ADJUSTMENT_KEYWORDS = ["ajuste"]

DEFAULT_TIMEZONE = "America/Sao_Paulo"


def _string_list(data: dict[str, object], key: str, default: list[str]) -> list[str]:
    value = data.get(key)
    if value is None:
        return list(default)
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


@dataclass
class DetectionConfig:
    """Configuration for statement format detection.

    Attributes:
        statement_prefixes: Filename prefixes of account statements (cents).
        invoice_prefixes: Filename prefixes of card invoices (reais).
        invoice_keywords: Filename keywords of card invoices.
        fallback_policy: What to do with unrecognized files: ``generic_csv``
            (warn and parse amounts as reais) or ``reject`` (raise).
    """

    statement_prefixes: list[str] = field(default_factory=lambda: list(DEFAULT_STATEMENT_PREFIXES))
    invoice_prefixes: list[str] = field(default_factory=lambda: list(DEFAULT_INVOICE_PREFIXES))
    invoice_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_INVOICE_KEYWORDS))
    fallback_policy: str = FALLBACK_GENERIC_CSV

    def __post_init__(self) -> None:
        if self.fallback_policy not in FALLBACK_POLICIES:
            raise ConfigError(
                f"Invalid fallback_policy '{self.fallback_policy}', "
                f"expected one of {', '.join(FALLBACK_POLICIES)}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DetectionConfig":
        """Create from dictionary."""
        return cls(
            statement_prefixes=_string_list(data, "statement_prefixes", DEFAULT_STATEMENT_PREFIXES),
            invoice_prefixes=_string_list(data, "invoice_prefixes", DEFAULT_INVOICE_PREFIXES),
            invoice_keywords=_string_list(data, "invoice_keywords", DEFAULT_INVOICE_KEYWORDS),
            fallback_policy=str(data.get("fallback_policy", FALLBACK_GENERIC_CSV)),
        )


@dataclass
class ValidationConfig:
    """Configuration for the transaction validator.

    Attributes:
        non_completed_markers: Description substrings of operations that did
            not settle (cancelled, reversed, failed...).
        transfer_keywords: Words that make a description transfer-flavored.
        reversal_keywords: Words that mark the refund half of a reversal pair.
        amount_tolerance: Maximum difference for two amounts to be equal.
        reversal_window_hours: How far apart a PIX and its reversal may be.
        adjustment_keywords: Words that mark a debit adjustment line.
        adjustment_window_days: How far an adjustment may be from the
            purchase it repeats.
    """

    non_completed_markers: list[str] = field(
        default_factory=lambda: list(DEFAULT_NON_COMPLETED_MARKERS)
    )
    transfer_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_TRANSFER_KEYWORDS))
    reversal_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_REVERSAL_KEYWORDS))
    amount_tolerance: Decimal = field(default_factory=lambda: Decimal("0.01"))
    reversal_window_hours: int = 24
    adjustment_keywords: list[str] = field(
        default_factory=lambda: list(DEFAULT_ADJUSTMENT_KEYWORDS)
    )
    adjustment_window_days: int = 7

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ValidationConfig":
        """Create from dictionary."""
        tolerance = Decimal("0.01")
        if "amount_tolerance" in data:
            tolerance = Decimal(str(data["amount_tolerance"]))

        return cls(
            non_completed_markers=_string_list(
                data, "non_completed_markers", DEFAULT_NON_COMPLETED_MARKERS
            ),
            transfer_keywords=_string_list(data, "transfer_keywords", DEFAULT_TRANSFER_KEYWORDS),
            reversal_keywords=_string_list(data, "reversal_keywords", DEFAULT_REVERSAL_KEYWORDS),
            amount_tolerance=tolerance,
            reversal_window_hours=int(data.get("reversal_window_hours", 24)),  # type: ignore[call-overload]
            adjustment_keywords=_string_list(
                data, "adjustment_keywords", DEFAULT_ADJUSTMENT_KEYWORDS
            ),
            adjustment_window_days=int(data.get("adjustment_window_days", 7)),  # type: ignore[call-overload]
        )


@dataclass
class NotificationConfig:
    """Configuration for notification parsing.

    Attributes:
        timezone: IANA zone the delivery date is taken in.
    """

    timezone: str = DEFAULT_TIMEZONE

    @property
    def tzinfo(self) -> ZoneInfo:
        """Resolve the configured timezone."""
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone '{self.timezone}'") from e

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "NotificationConfig":
        """Create from dictionary."""
        return cls(timezone=str(data.get("timezone", DEFAULT_TIMEZONE)))


@dataclass
class LoggingConfig:
    """Configuration for logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Path to log file.
    """

    level: str = "INFO"
    file: str = DEFAULT_LOG_FILE

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "LoggingConfig":
        """Create from dictionary."""
        return cls(
            level=str(data.get("level", "INFO")),
            file=str(data.get("file", DEFAULT_LOG_FILE)),
        )


@dataclass
class Config:
    """Main configuration container.

    Attributes:
        detection: Format detection configuration.
        validation: Validator configuration.
        notifications: Notification parsing configuration.
        logging: Logging configuration.
        category_rules: Ordered category rules (first match wins).
        registry: Institution notification templates.
        manual_corrections: Per-period totals overlay, keyed by YYYY-MM.
        strict: If True, the first row-level error aborts the file.
    """

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    category_rules: list[CategoryRule] = field(default_factory=default_category_rules)
    registry: TemplateRegistry = field(default_factory=default_registry)
    manual_corrections: dict[str, ManualCorrection] = field(default_factory=dict)
    strict: bool = False


def load_yaml_file(path: Path) -> dict[str, object]:
    """Load a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not content:
        return {}
    if not isinstance(content, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(content).__name__}")
    return content


def _section(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping, got {type(value).__name__}")
    return value


def load_settings(
    path: Path,
) -> tuple[DetectionConfig, ValidationConfig, NotificationConfig, LoggingConfig, bool]:
    """Load settings from settings.yaml.

    Args:
        path: Path to settings.yaml.

    Returns:
        Tuple of (DetectionConfig, ValidationConfig, NotificationConfig,
        LoggingConfig, strict flag).
    """
    data = load_yaml_file(path)

    return (
        DetectionConfig.from_dict(_section(data, "detection")),
        ValidationConfig.from_dict(_section(data, "validation")),
        NotificationConfig.from_dict(_section(data, "notifications")),
        LoggingConfig.from_dict(_section(data, "logging")),
        bool(data.get("strict", False)),
    )


def load_categories(path: Path) -> list[CategoryRule]:
    """Load ordered category rules from categories.yaml.

    Args:
        path: Path to categories.yaml.

    Returns:
        Rules in file order (first match wins).
    """
    data = load_yaml_file(path)

    rule_list = data.get("rules")
    if rule_list is None:
        return default_category_rules()
    if not isinstance(rule_list, list):
        raise ConfigError(f"'rules' must be a list, got {type(rule_list).__name__}")

    rules: list[CategoryRule] = []
    for rule_data in rule_list:
        try:
            rules.append(CategoryRule.from_dict(rule_data))
        except (KeyError, ValueError, TypeError) as e:
            raise ConfigError(f"Invalid category rule {rule_data!r}: {e}") from e
    return rules


def load_institutions(path: Path) -> TemplateRegistry:
    """Load notification templates from institutions.yaml.

    Args:
        path: Path to institutions.yaml.

    Returns:
        Registry with the institutions in file order.
    """
    data = load_yaml_file(path)
    try:
        return TemplateRegistry.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigError(f"Invalid institution templates in {path}: {e}") from e


def load_corrections(path: Path) -> dict[str, ManualCorrection]:
    """Load the manual totals overlay from corrections.yaml.

    Args:
        path: Path to corrections.yaml.

    Returns:
        Corrections keyed by period (YYYY-MM).
    """
    if not path.exists():
        return {}

    data = load_yaml_file(path)

    correction_list = data.get("corrections") or []
    if not isinstance(correction_list, list):
        raise ConfigError(
            f"'corrections' must be a list, got {type(correction_list).__name__}"
        )

    corrections: dict[str, ManualCorrection] = {}
    for correction_data in correction_list:
        try:
            correction = ManualCorrection.from_dict(correction_data)
        except (KeyError, ArithmeticError, TypeError) as e:
            raise ConfigError(f"Invalid correction {correction_data!r}: {e}") from e
        corrections[correction.period] = correction
    return corrections


def load_config(
    config_dir: Optional[Path] = None,
    settings_path: Optional[Path] = None,
    categories_path: Optional[Path] = None,
    institutions_path: Optional[Path] = None,
    corrections_path: Optional[Path] = None,
) -> Config:
    """Load complete configuration from all config files.

    Every file is optional; a missing file keeps the built-in defaults.

    Args:
        config_dir: Base config directory (default: ./config).
        settings_path: Path to settings.yaml (or None to use default).
        categories_path: Path to categories.yaml (or None to use default).
        institutions_path: Path to institutions.yaml (or None to use default).
        corrections_path: Path to corrections.yaml (or None to use default).

    Returns:
        Complete Config object.

    Raises:
        ConfigError: If a present file has an invalid structure.
    """
    if config_dir is None:
        config_dir = Path("config")

    if settings_path is None:
        settings_path = config_dir / "settings.yaml"
    if categories_path is None:
        categories_path = config_dir / "categories.yaml"
    if institutions_path is None:
        institutions_path = config_dir / "institutions.yaml"
    if corrections_path is None:
        corrections_path = config_dir / "corrections.yaml"

    config = Config()

    if settings_path.exists():
        (
            config.detection,
            config.validation,
            config.notifications,
            config.logging,
            config.strict,
        ) = load_settings(settings_path)
        logger.info(f"Loaded settings from {settings_path}")
    else:
        logger.warning(f"Settings file not found: {settings_path}, using defaults")

    if categories_path.exists():
        config.category_rules = load_categories(categories_path)
        logger.info(f"Loaded {len(config.category_rules)} category rules from {categories_path}")
    else:
        logger.warning(f"Categories file not found: {categories_path}, using built-in rules")

    if institutions_path.exists():
        config.registry = load_institutions(institutions_path)
        logger.info(
            f"Loaded {len(config.registry)} institutions from {institutions_path}"
        )
    else:
        logger.warning(
            f"Institutions file not found: {institutions_path}, using built-in templates"
        )

    config.manual_corrections = load_corrections(corrections_path)
    if config.manual_corrections:
        logger.info(f"Loaded {len(config.manual_corrections)} manual corrections")

    return config
