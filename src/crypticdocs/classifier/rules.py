"""Pattern tables for cryptic response classification.

Every table is evaluated in order and the first match wins. The patterns are
tuned against captured terminal answers (see ``tests/fixtures/responses``),
not against a general grammar of the help system.
"""

from __future__ import annotations

import re
from typing import Pattern, Tuple

from ..models import ExampleType, ResponseType, TechnicalLevel

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
TABS = re.compile(r"\t")
EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

# ---------------------------------------------------------------------------
# Response type: (pattern, label), first match wins
# ---------------------------------------------------------------------------

RESPONSE_TYPE_RULES: Tuple[Tuple[Pattern[str], ResponseType], ...] = (
    (
        re.compile(
            r"FOR AN EXPLANATION\b.*\bMS\d+|TASK\s+FORMAT\s+REFERENCE[\s\S]*\bMS\d+",
            re.IGNORECASE,
        ),
        ResponseType.HELP_DOCUMENTATION,
    ),
    (
        re.compile(r"TASK\s+FORMAT\s+REFERENCE[\s\S]*-{4}", re.IGNORECASE),
        ResponseType.COMMAND_LIST,
    ),
    (
        re.compile(r"COMMAND NOT RECOGNI[SZ]ED|INVALID ENTRY|NOT AUTHORI[SZ]ED", re.IGNORECASE),
        ResponseType.ERROR,
    ),
    (
        re.compile(r"\b(?:LIMITED|PARTIAL|BASIC)\b", re.IGNORECASE),
        ResponseType.PARTIAL_HELP,
    ),
    (
        re.compile(r"\b(?:SYSTEM|STATUS|CONNECTION)\b", re.IGNORECASE),
        ResponseType.SYSTEM_MESSAGE,
    ),
)

# ---------------------------------------------------------------------------
# Titles, in priority order; group 1 is the title
# ---------------------------------------------------------------------------

TITLE_PATTERNS: Tuple[Pattern[str], ...] = (
    # "AVAILABILITY     1   EN 13MAR24 1021Z"
    re.compile(r"^([A-Z][A-Z /&-]*?)\s+\d+\s+EN\s+\d{2}[A-Z]{3}\d{2}\s+\d{4}Z?$", re.MULTILINE),
    # "PRICING 2"
    re.compile(r"^([A-Z][A-Z /&-]*?[A-Z])\s+\d+\s*$", re.MULTILINE),
    # "PASSENGER NAME RECORD"
    re.compile(r"^([A-Z][A-Z /&-]{10,})$", re.MULTILINE),
)

# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

SECTION_HEADER_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^[A-Z][A-Z ]{2,}:$"),
    re.compile(r"^[A-Z][A-Z &/-]{5,39}$"),
)

TASK_HEADER_KEYWORDS: Tuple[str, ...] = ("TASK", "FORMAT", "REFERENCE")
TABLE_RULE = "----"
COLUMN_SPLIT = re.compile(r"\s{2,}")

NAVIGATION_MARKERS: Tuple[Pattern[str], ...] = (
    re.compile(r"^>"),
    re.compile(r">\s*MD\b"),
    re.compile(r"^MD$"),
)

DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 200
DESCRIPTION_SCAN_LINES = 10

# ---------------------------------------------------------------------------
# Examples, references, syntax
# ---------------------------------------------------------------------------

EXAMPLE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^[A-Z]{2}\d+[A-Z]{3}[A-Z0-9/*]+"),
    re.compile(r"^\w+\d+\w+"),
    re.compile(r"^[A-Z]{2}/[A-Z0-9]+"),
    re.compile(r"^\*[A-Z0-9]+"),
)
EXAMPLE_MIN_LENGTH = 5
EXAMPLE_MAX_LENGTH = 100

# First match wins
EXAMPLE_TYPE_RULES: Tuple[Tuple[Pattern[str], ExampleType], ...] = (
    (re.compile(r"\*"), ExampleType.ROUND_TRIP),
    (re.compile(r"^[A-Z]{2}\d+"), ExampleType.AVAILABILITY),
    (re.compile(r"/"), ExampleType.ROUTE),
)

REFERENCE_CODE = re.compile(r"\bMS\d+\b")

SYNTAX_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\[[^\]]+\]"),
    re.compile(r"\{[^}]+\}"),
    re.compile(r"<[A-Z][A-Z0-9 /-]*>"),
)
SYNTAX_MIN_LENGTH = 10
SYNTAX_MAX_LENGTH = 150

# ---------------------------------------------------------------------------
# Notes, warnings, see-also
# ---------------------------------------------------------------------------

NOTE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^NOTES?\b", re.IGNORECASE),
    re.compile(r"^NB\b", re.IGNORECASE),
    re.compile(r"PLEASE ENTER:", re.IGNORECASE),
    re.compile(r"^FOR AN EXPLANATION\b", re.IGNORECASE),
)

WARNING_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\W*(?:WARNING|CAUTION|IMPORTANT)\b", re.IGNORECASE),
)

SEE_ALSO = re.compile(r"\bSEE\s+ALSO\b[: ]*([A-Z0-9 ,/]+)", re.IGNORECASE)

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

TECHNICAL_TOKEN = re.compile(r"[A-Z]{2,}")
NUMERIC_TOKEN = re.compile(r"\d+")
SYMBOL = re.compile(r"[\[\]{}/*]")

QUALITY_WEIGHTS = {
    "title": 2,
    "examples": 2,
    "references": 1,
    "syntax": 1,
    "tasks": 2,
    "notes": 1,
    "format_keyword": 1,
}

MAX_SCORE = 10

# ---------------------------------------------------------------------------
# Content analysis
# ---------------------------------------------------------------------------

ENGLISH_KEYWORDS = re.compile(r"\b(?:enter|display|format|reference|explanation)\b", re.IGNORECASE)
ABBREVIATION = re.compile(r"\b[A-Z]{2,}\b")
EMBEDDED_CODE = re.compile(r"[A-Z]\d+[A-Z]")
ENTRY_CODE = re.compile(r"[A-Z]{2}\d+")
EXAMPLE_LINE = re.compile(r"^[A-Z]{2}\d+", re.MULTILINE)
BRACKETS = re.compile(r"[\[\]{}]")

MULTI_SECTION_BLOCKS = 3

TECHNICAL_WEIGHTS = {
    "entry_code": 2,
    "reference": 1,
    "brackets": 1,
    "format_keyword": 1,
    "reference_keyword": 1,
    "long_text": 1,
    "many_lines": 1,
}
TECHNICAL_LONG_TEXT = 500
TECHNICAL_MANY_LINES = 10
TECHNICAL_LEVELS: Tuple[Tuple[int, TechnicalLevel], ...] = (
    (6, TechnicalLevel.ADVANCED),
    (4, TechnicalLevel.INTERMEDIATE),
    (2, TechnicalLevel.BASIC),
)
