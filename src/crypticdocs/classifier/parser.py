"""Free-text response classifier.

``parse`` turns raw cryptic response text into a ``ParsedResponse``. It is
pure: identical ``(raw_text, command_text)`` inputs always produce equal
outputs, and it performs no I/O and reads no clock.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..models import (
    CommandResult,
    ContentAnalysis,
    ContentDensity,
    Example,
    ExampleType,
    LanguageIndicators,
    ParsedResponse,
    ResponseMetadata,
    ResponseType,
    Section,
    TaskRow,
    TechnicalLevel,
)
from . import rules

logger = logging.getLogger(__name__)


def normalize(raw_text: str) -> str:
    """Drop control characters, unify newlines and strip line ends.

    Runs of inner spaces are kept: task tables are split on them.
    """
    text = rules.CONTROL_CHARS.sub("", raw_text.replace("\r\n", "\n").replace("\r", "\n"))
    text = rules.TABS.sub("  ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = rules.EXCESS_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def classify(text: str) -> ResponseType:
    """Ordered rule table, first match wins."""
    if not text:
        return ResponseType.EMPTY
    for pattern, label in rules.RESPONSE_TYPE_RULES:
        if pattern.search(text):
            return label
    return ResponseType.UNKNOWN


def is_section_header(line: str) -> bool:
    if rules.COLUMN_SPLIT.search(line):
        return False
    return any(pattern.match(line) for pattern in rules.SECTION_HEADER_PATTERNS)


def is_navigation_marker(line: str) -> bool:
    return any(pattern.search(line) for pattern in rules.NAVIGATION_MARKERS)


def _is_task_header(line: str) -> bool:
    return all(keyword in line for keyword in rules.TASK_HEADER_KEYWORDS)


def extract_title(text: str) -> Tuple[Optional[str], Optional[int]]:
    """Return the title and the index of the line it was found on."""
    for pattern in rules.TITLE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            line_index = text.count("\n", 0, match.start())
            return match.group(1).strip(), line_index
    return None, None


def extract_description(lines: List[str], title_line: Optional[int]) -> Optional[str]:
    start = title_line + 1 if title_line is not None else 0
    for line in lines[start : start + rules.DESCRIPTION_SCAN_LINES]:
        if not (rules.DESCRIPTION_MIN_LENGTH <= len(line) <= rules.DESCRIPTION_MAX_LENGTH):
            continue
        if rules.TABLE_RULE in line or any(k in line for k in rules.TASK_HEADER_KEYWORDS):
            continue
        if rules.COLUMN_SPLIT.search(line) or is_section_header(line):
            continue
        return line
    return None


def extract_sections(lines: List[str]) -> List[Section]:
    sections: List[Section] = []
    title: Optional[str] = None
    start_line = 0
    content: List[str] = []

    for index, line in enumerate(lines):
        if is_section_header(line):
            if title is not None:
                sections.append(Section(title=title, content=content, start_line=start_line))
            title, start_line, content = line, index, []
        elif title is not None and line:
            content.append(line)

    if title is not None:
        sections.append(Section(title=title, content=content, start_line=start_line))
    return sections


def parse_task_line(line: str) -> Optional[TaskRow]:
    parts = [part.strip() for part in rules.COLUMN_SPLIT.split(line) if part.strip()]
    if len(parts) < 2:
        return None
    return TaskRow(
        task=parts[0],
        format=parts[1],
        reference=parts[2] if len(parts) > 2 else "",
        full_line=line,
    )


def extract_tasks(lines: List[str]) -> List[TaskRow]:
    tasks: List[TaskRow] = []
    in_block = False

    for line in lines:
        if not in_block:
            in_block = _is_task_header(line)
            continue
        if is_navigation_marker(line):
            break
        if not line or rules.TABLE_RULE in line:
            continue
        row = parse_task_line(line)
        if row is not None:
            tasks.append(row)
    return tasks


def classify_example(example: str) -> ExampleType:
    for pattern, example_type in rules.EXAMPLE_TYPE_RULES:
        if pattern.search(example):
            return example_type
    return ExampleType.GENERAL


def extract_examples(lines: List[str]) -> List[Example]:
    examples: List[Example] = []
    for line in lines:
        if not (rules.EXAMPLE_MIN_LENGTH < len(line) < rules.EXAMPLE_MAX_LENGTH):
            continue
        if any(pattern.match(line) for pattern in rules.EXAMPLE_PATTERNS):
            examples.append(Example(text=line, type=classify_example(line)))
    return examples


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def extract_references(text: str) -> List[str]:
    return _unique(rules.REFERENCE_CODE.findall(text))


def extract_syntax(lines: List[str]) -> List[str]:
    return [
        line
        for line in lines
        if rules.SYNTAX_MIN_LENGTH < len(line) < rules.SYNTAX_MAX_LENGTH
        and any(pattern.search(line) for pattern in rules.SYNTAX_PATTERNS)
    ]


def extract_notes(lines: List[str]) -> List[str]:
    return [line for line in lines if line and any(p.search(line) for p in rules.NOTE_PATTERNS)]


def extract_warnings(lines: List[str]) -> List[str]:
    return [line for line in lines if line and any(p.search(line) for p in rules.WARNING_PATTERNS)]


def extract_see_also(text: str) -> List[str]:
    items: List[str] = []
    for match in rules.SEE_ALSO.finditer(text):
        items.extend(item.strip() for item in match.group(1).split(",") if item.strip())
    return _unique(items)


def detect_language_indicators(text: str) -> LanguageIndicators:
    return LanguageIndicators(
        english=bool(rules.ENGLISH_KEYWORDS.search(text)),
        has_abbreviations=bool(rules.ABBREVIATION.search(text)),
        has_numbers=bool(rules.NUMERIC_TOKEN.search(text)),
        has_codes=bool(rules.EMBEDDED_CODE.search(text)),
    )


def content_density(text: str) -> ContentDensity:
    """Share of non-blank characters, characters per non-empty line and tokens per word.

    The information ratio counts abbreviations, numbers and symbols against
    the word count, so dense entry codes can push it above 1.
    """
    total = len(text)
    meaningful = len("".join(text.split()))
    filled_lines = sum(1 for line in text.split("\n") if line.strip())
    words = len(text.split())
    informative = (
        len(rules.ABBREVIATION.findall(text))
        + len(rules.NUMERIC_TOKEN.findall(text))
        + len(rules.SYMBOL.findall(text))
    )
    return ContentDensity(
        text_density=meaningful / total if total else 0.0,
        average_line_length=total / filled_lines if filled_lines else 0.0,
        information_ratio=informative / words if words else 0.0,
    )


def technical_level(text: str) -> TechnicalLevel:
    weights = rules.TECHNICAL_WEIGHTS
    score = 0
    if rules.ENTRY_CODE.search(text):
        score += weights["entry_code"]
    if rules.REFERENCE_CODE.search(text):
        score += weights["reference"]
    if rules.BRACKETS.search(text):
        score += weights["brackets"]
    if "FORMAT" in text:
        score += weights["format_keyword"]
    if "REFERENCE" in text:
        score += weights["reference_keyword"]
    if len(text) > rules.TECHNICAL_LONG_TEXT:
        score += weights["long_text"]
    if len(text.split("\n")) > rules.TECHNICAL_MANY_LINES:
        score += weights["many_lines"]
    for threshold, level in rules.TECHNICAL_LEVELS:
        if score >= threshold:
            return level
    return TechnicalLevel.MINIMAL


def analyze_content(text: str) -> ContentAnalysis:
    """Content flags, language indicators, density and technical level of normalized text."""
    lowered = text.lower()
    return ContentAnalysis(
        has_format_information="FORMAT" in text,
        has_examples=bool(rules.EXAMPLE_LINE.search(text)),
        has_references=bool(rules.REFERENCE_CODE.search(text)),
        has_syntax="[" in text or "{" in text,
        has_notes="note:" in lowered,
        has_warnings="warning" in lowered,
        is_multi_section=len(text.split("\n\n")) > rules.MULTI_SECTION_BLOCKS,
        language_indicators=detect_language_indicators(text),
        content_density=content_density(text),
        technical_level=technical_level(text),
    )


def complexity_score(text: str) -> int:
    """Capped weighted sum of length, lines, technical/numeric tokens and symbols."""
    score = min(len(text) / 100, 5)
    score += len(text.split("\n")) / 5
    score += len(rules.TECHNICAL_TOKEN.findall(text)) / 10
    score += len(rules.NUMERIC_TOKEN.findall(text)) / 10
    score += len(rules.SYMBOL.findall(text)) / 5
    # half-up rounding, independent of float banker's rounding
    return min(int(score + 0.5), rules.MAX_SCORE)


def quality_score(parsed: ParsedResponse, text: str) -> int:
    weights = rules.QUALITY_WEIGHTS
    score = 0
    if parsed.title:
        score += weights["title"]
    if parsed.examples:
        score += weights["examples"]
    if parsed.references:
        score += weights["references"]
    if parsed.syntax:
        score += weights["syntax"]
    if parsed.tasks:
        score += weights["tasks"]
    if parsed.notes:
        score += weights["notes"]
    if "FORMAT" in text:
        score += weights["format_keyword"]
    return min(score, rules.MAX_SCORE)


def parse(raw_text: Optional[str], command_text: str) -> ParsedResponse:
    """Turn raw response text into a structured, scored ``ParsedResponse``.

    Args:
        raw_text: Cryptic response text as returned by the terminal
        command_text: Command that produced it, e.g. ``"HE AN"``

    Returns:
        ParsedResponse; blank input yields an ``empty`` response
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        return ParsedResponse(command=command_text, response_type=ResponseType.EMPTY)

    text = normalize(raw_text)
    lines = text.split("\n")
    title, title_line = extract_title(text)

    parsed = ParsedResponse(
        command=command_text,
        response_type=classify(text),
        title=title,
        description=extract_description(lines, title_line),
        sections=extract_sections(lines),
        tasks=extract_tasks(lines),
        examples=extract_examples(lines),
        references=extract_references(text),
        syntax=extract_syntax(lines),
        notes=extract_notes(lines),
        warnings=extract_warnings(lines),
        see_also=extract_see_also(text),
    )
    metadata = ResponseMetadata(
        length=len(text),
        word_count=len(text.split()),
        line_count=len(lines),
        complexity=complexity_score(text),
        quality=quality_score(parsed, text),
        analysis=analyze_content(text),
    )
    return parsed.model_copy(update={"metadata": metadata})


class ResponseClassifier:
    """Stateless facade used by the scheduler to annotate results."""

    def parse(self, raw_text: Optional[str], command_text: str) -> ParsedResponse:
        return parse(raw_text, command_text)

    def enrich(self, result: CommandResult) -> CommandResult:
        """Attach a ``ParsedResponse`` to a successful result."""
        if not result.success:
            return result
        parsed = parse(result.response_text, result.command)
        logger.debug(
            "Response classified",
            extra={
                "command": result.command,
                "response_type": parsed.response_type.value,
                "quality": parsed.metadata.quality,
            },
        )
        return result.model_copy(update={"parsed": parsed})


__all__ = [
    "ResponseClassifier",
    "classify",
    "complexity_score",
    "extract_see_also",
    "extract_tasks",
    "extract_title",
    "is_section_header",
    "normalize",
    "parse",
    "quality_score",
]
