"""Domain models shared by the gateway, the classifier and the scheduler."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Priority(str, Enum):
    """Dispatch tier; higher tiers run first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


class ResponseType(str, Enum):
    """Classification of a cryptic response."""

    HELP_DOCUMENTATION = "help_documentation"
    COMMAND_LIST = "command_list"
    ERROR = "error"
    PARTIAL_HELP = "partial_help"
    SYSTEM_MESSAGE = "system_message"
    EMPTY = "empty"
    UNKNOWN = "unknown"


class ExampleType(str, Enum):
    ROUND_TRIP = "round_trip"
    AVAILABILITY = "availability"
    ROUTE = "route"
    GENERAL = "general"


# ---------------------------------------------------------------------------
# Parsed responses
# ---------------------------------------------------------------------------


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    content: List[str] = Field(default_factory=list)
    start_line: int = 0


class TaskRow(BaseModel):
    """One row of a TASK / FORMAT / REFERENCE table."""

    model_config = ConfigDict(frozen=True)

    task: str
    format: str
    reference: str = ""
    full_line: str = ""


class Example(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    type: ExampleType = ExampleType.GENERAL


class TechnicalLevel(str, Enum):
    MINIMAL = "minimal"
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class LanguageIndicators(BaseModel):
    model_config = ConfigDict(frozen=True)

    english: bool = False
    has_abbreviations: bool = False
    has_numbers: bool = False
    has_codes: bool = False


class ContentDensity(BaseModel):
    """Character and token ratios of the normalized text."""

    model_config = ConfigDict(frozen=True)

    text_density: float = Field(default=0.0, ge=0.0, le=1.0)
    average_line_length: float = Field(default=0.0, ge=0.0)
    information_ratio: float = Field(default=0.0, ge=0.0)


class ContentAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_format_information: bool = False
    has_examples: bool = False
    has_references: bool = False
    has_syntax: bool = False
    has_notes: bool = False
    has_warnings: bool = False
    is_multi_section: bool = False
    language_indicators: LanguageIndicators = Field(default_factory=LanguageIndicators)
    content_density: ContentDensity = Field(default_factory=ContentDensity)
    technical_level: TechnicalLevel = TechnicalLevel.MINIMAL


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    length: int = 0
    word_count: int = 0
    line_count: int = 0
    complexity: int = Field(default=0, ge=0, le=10)
    quality: int = Field(default=0, ge=0, le=10)
    analysis: ContentAnalysis = Field(default_factory=ContentAnalysis)


class ParsedResponse(BaseModel):
    """Structured view of one cryptic response; carries no timestamp."""

    model_config = ConfigDict(frozen=True)

    command: str
    response_type: ResponseType = ResponseType.UNKNOWN
    title: Optional[str] = None
    description: Optional[str] = None
    sections: List[Section] = Field(default_factory=list)
    tasks: List[TaskRow] = Field(default_factory=list)
    examples: List[Example] = Field(default_factory=list)
    references: List[str] = Field(default_factory=list)
    syntax: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    see_also: List[str] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


# ---------------------------------------------------------------------------
# Commands and results
# ---------------------------------------------------------------------------


class CommandSpec(BaseModel):
    """One catalog entry."""

    model_config = ConfigDict(frozen=True)

    command_text: str
    category: str = "uncategorized"
    category_name: str = ""
    priority: Priority = Priority.MEDIUM
    critical: bool = False


class CommandResult(BaseModel):
    """Outcome of one dispatch. Enrichment produces copies, never mutation."""

    model_config = ConfigDict(frozen=True)

    command: str
    success: bool
    response_text: Optional[str] = None
    response_type: ResponseType = ResponseType.UNKNOWN
    error: Optional[str] = None
    error_kind: Optional[str] = None
    critical: bool = False
    attempts: int = 0
    category: Optional[str] = None
    priority: Optional[Priority] = None
    batch_index: Optional[int] = None
    global_index: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0
    parsed: Optional[ParsedResponse] = None


__all__ = [
    "CommandResult",
    "CommandSpec",
    "ContentAnalysis",
    "ContentDensity",
    "Example",
    "ExampleType",
    "LanguageIndicators",
    "ParsedResponse",
    "Priority",
    "ResponseMetadata",
    "ResponseType",
    "Section",
    "TaskRow",
    "TechnicalLevel",
]
