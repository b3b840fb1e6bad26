"""Command catalog loading, validation and dispatch ordering.

The catalog file is JSON::

    {
      "categories": {"availability": {"name": "Availability", "commands": ["HE AN"]}},
      "command_details": {"HE AN": {"priority": "high", "critical": true}}
    }

When the file cannot be read or does not match this layout a fixed fallback
catalog is used instead.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import CatalogError
from ..models import CommandSpec, Priority

logger = logging.getLogger(__name__)

T = TypeVar("T")

HIGH_PRIORITY_COMMANDS = ("HE AN", "HE SS", "HE FXP", "HE TTP", "HE NM")
LOW_PRIORITY_PREFIXES = ("HE HELP", "HE SYS")

FALLBACK_CATEGORY = "backup"
FALLBACK_CATEGORY_NAME = "Backup Commands"
FALLBACK_COMMANDS: Tuple[str, ...] = (
    "HE AN", "HE SS", "HE FXP", "HE TTP", "HE NM", "HE AP", "HE SSR",
    "HE NN", "HE HK", "HE SA", "HE SB", "HE FXX", "HE TTM", "HE TTC",
    "HE QUE", "HE QC", "HE RM", "HE RC", "HE FP", "HE SM", "HE ST",
    "HE HELP", "HE SYS", "HE ERROR", "HE WARNING", "HE EXAMPLES",
)  # fmt: skip
FALLBACK_HIGH_COUNT = 7
FALLBACK_MEDIUM_COUNT = 8

# Transaction code -> category
CATEGORY_CODES: Dict[str, Tuple[str, ...]] = {
    "availability": ("AN", "SA", "AA", "AD", "AE"),
    "booking": ("SS", "NN", "HK", "HL", "HN"),
    "pricing": ("FXP", "FXX", "FXG", "FXB", "FXL"),
    "ticketing": ("TTP", "TTM", "TTC", "TTR"),
    "queue": ("QUE", "QC", "QR", "QD"),
    "pnr": ("NM", "AP", "RM", "RT"),
}
CATEGORY_NAMES: Dict[str, str] = {
    "availability": "Availability",
    "booking": "Booking",
    "pricing": "Pricing",
    "ticketing": "Ticketing",
    "queue": "Queue",
    "pnr": "PNR",
}
UNCATEGORIZED = "uncategorized"

COMMAND_PATTERN = re.compile(r"^HE [A-Z0-9\s/*_-]+$")
COMMAND_MIN_LENGTH = 4
COMMAND_MAX_LENGTH = 50


class _CommandDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    priority: Priority = Priority.MEDIUM
    critical: bool = False


class _Category(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    commands: List[str] = Field(default_factory=list)


class _CatalogFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    categories: Dict[str, _Category]
    command_details: Dict[str, _CommandDetail] = Field(default_factory=dict)


def normalize_command(command: str) -> str:
    return command.strip().upper()


def is_valid_command(command: object) -> bool:
    """``HE`` prefix, sane length and the terminal's character set."""
    if not isinstance(command, str):
        return False
    text = normalize_command(command)
    if not text.startswith("HE "):
        return False
    if not COMMAND_MIN_LENGTH <= len(text) <= COMMAND_MAX_LENGTH:
        return False
    return bool(COMMAND_PATTERN.match(text))


def default_priority(command: str) -> Priority:
    if command in HIGH_PRIORITY_COMMANDS:
        return Priority.HIGH
    if command.startswith(LOW_PRIORITY_PREFIXES):
        return Priority.LOW
    return Priority.MEDIUM


def infer_category(command: str) -> str:
    """Category key for a command from its transaction code."""
    parts = normalize_command(command).split()
    code = parts[1] if len(parts) > 1 else ""
    for category, codes in CATEGORY_CODES.items():
        if code in codes:
            return category
    return UNCATEGORIZED


def fallback_catalog() -> List[CommandSpec]:
    """Fixed catalog; priority by position (7 high, 8 medium, rest low).

    Each entry is filed under its inferred category. Codes with no known
    category land in the backup category.
    """
    specs: List[CommandSpec] = []
    for index, command in enumerate(FALLBACK_COMMANDS):
        if index < FALLBACK_HIGH_COUNT:
            priority = Priority.HIGH
        elif index < FALLBACK_HIGH_COUNT + FALLBACK_MEDIUM_COUNT:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW
        category = infer_category(command)
        if category == UNCATEGORIZED:
            category, category_name = FALLBACK_CATEGORY, FALLBACK_CATEGORY_NAME
        else:
            category_name = CATEGORY_NAMES[category]
        specs.append(
            CommandSpec(
                command_text=command,
                category=category,
                category_name=category_name,
                priority=priority,
            )
        )
    return specs


def parse_catalog(data: Mapping[str, object]) -> List[CommandSpec]:
    """Build command specs from decoded catalog JSON.

    Raises:
        CatalogError: If the mapping does not have the catalog layout
    """
    try:
        catalog = _CatalogFile.model_validate(data)
    except ValidationError as exc:
        raise CatalogError(
            f"Invalid catalog layout: {exc.errors()[0].get('msg', 'invalid')}",
            details={"errors": exc.error_count()},
        ) from exc

    specs: List[CommandSpec] = []
    skipped: List[str] = []
    for key, category in catalog.categories.items():
        for raw_command in category.commands:
            if not is_valid_command(raw_command):
                skipped.append(raw_command)
                continue
            command = normalize_command(raw_command)
            detail = catalog.command_details.get(command) or catalog.command_details.get(raw_command)
            specs.append(
                CommandSpec(
                    command_text=command,
                    category=key,
                    category_name=category.name or key,
                    priority=detail.priority if detail else default_priority(command),
                    critical=detail.critical if detail else False,
                )
            )

    if skipped:
        logger.warning("Skipped invalid catalog commands", extra={"commands": skipped})
    return specs


def load_catalog(path: Optional[Path], *, fallback: bool = True) -> List[CommandSpec]:
    """Load a catalog file, falling back to ``fallback_catalog()`` on failure.

    Args:
        path: Catalog JSON path, ``None`` to use the fallback directly
        fallback: When False, load failures raise instead

    Raises:
        CatalogError: Only when ``fallback`` is False
    """
    try:
        if path is None:
            raise CatalogError("No catalog path configured")
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CatalogError(f"Catalog {path} is not a JSON object")
        specs = parse_catalog(data)
    except CatalogError as exc:
        if not fallback:
            raise
        logger.warning(
            "Catalog unavailable, using fallback commands",
            extra={"path": str(path) if path else None, "error": exc.message},
        )
        return fallback_catalog()

    logger.info("Catalog loaded", extra={"path": str(path), "commands": len(specs)})
    return specs


def sort_by_priority(specs: Iterable[CommandSpec]) -> List[CommandSpec]:
    """Stable sort, high before medium before low."""
    return sorted(specs, key=lambda spec: -spec.priority.rank)


def partition(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


__all__ = [
    "CATEGORY_CODES",
    "CATEGORY_NAMES",
    "FALLBACK_COMMANDS",
    "default_priority",
    "fallback_catalog",
    "infer_category",
    "is_valid_command",
    "load_catalog",
    "parse_catalog",
    "partition",
    "sort_by_priority",
]
