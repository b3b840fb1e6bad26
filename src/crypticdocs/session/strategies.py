"""Credential extraction strategies.

Each strategy inspects one kind of ambient session state and returns a raw
candidate mapping (``session_id``, ``context_id``, ``user_id``,
``organization``, ``office_id``, ``gds_code``, ``cookies``) or ``None``.
Strategies never decide whether a candidate is usable; the provider does.
"""

from __future__ import annotations

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from html.parser import HTMLParser
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Candidate = Dict[str, Any]
SourceInput = Union[str, Path, Mapping[str, Any], None]

# Substring of a lower-cased key -> candidate field. First match wins.
KEY_HINTS: Tuple[Tuple[str, str], ...] = (
    ("session", "session_id"),
    ("context", "context_id"),
    ("office", "office_id"),
    ("org", "organization"),
    ("user", "user_id"),
)

# Exact keys used by the terminal's own request payload.
PAYLOAD_KEYS: Dict[str, str] = {
    "jSessionId": "session_id",
    "sessionId": "session_id",
    "contextId": "context_id",
    "userId": "user_id",
    "organization": "organization",
    "officeId": "office_id",
    "gds": "gds_code",
}


def field_for_key(key: str) -> Optional[str]:
    """Map an arbitrary storage/markup key onto a candidate field."""
    if key in PAYLOAD_KEYS:
        return PAYLOAD_KEYS[key]
    lowered = key.lower()
    for hint, field_name in KEY_HINTS:
        if hint in lowered:
            return field_name
    return None


def is_plausible(candidate: Optional[Candidate]) -> bool:
    """A candidate is usable only with a non-empty session or context id."""
    if not candidate:
        return False
    return bool(candidate.get("session_id") or candidate.get("context_id"))


def _read_text(source: Union[str, Path]) -> Optional[str]:
    path = Path(source)
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


class SessionStrategy(ABC):
    """One ordered source of session credentials."""

    name: str = "strategy"

    @abstractmethod
    def extract(self) -> Optional[Candidate]:
        """Return a raw candidate or ``None`` when nothing was found."""


# ---------------------------------------------------------------------------
# 1. Intercepted request data
# ---------------------------------------------------------------------------


class InterceptedRequestStrategy(SessionStrategy):
    """Reads the last intercepted cryptic request.

    Accepts the bare request payload (``{"jSessionId": ..., "contextId": ...}``)
    or a capture wrapper ``{"body": <payload or JSON string>, "cookies": {...}}``,
    given either as a mapping or as a path to a JSON file.
    """

    name = "intercepted_request"

    def __init__(self, source: SourceInput = None) -> None:
        self._source = source

    def _load(self) -> Optional[Mapping[str, Any]]:
        if self._source is None:
            return None
        if isinstance(self._source, Mapping):
            return self._source
        text = _read_text(self._source)
        if not text:
            return None
        return json.loads(text)

    def extract(self) -> Optional[Candidate]:
        capture = self._load()
        if not capture:
            return None

        body: Any = capture.get("body", capture)
        if isinstance(body, str):
            body = json.loads(body)
        if not isinstance(body, Mapping):
            return None

        candidate: Candidate = {}
        for key, field_name in PAYLOAD_KEYS.items():
            value = body.get(key)
            if value:
                candidate.setdefault(field_name, str(value))

        cookies = capture.get("cookies")
        if isinstance(cookies, Mapping):
            candidate["cookies"] = {str(k): str(v) for k, v in cookies.items()}
        return candidate or None


# ---------------------------------------------------------------------------
# 2. Page structure (hidden inputs, meta tags, body data attributes)
# ---------------------------------------------------------------------------


class _PageStructureParser(HTMLParser):
    """Collect key/value pairs exposed by the terminal page markup."""

    def __init__(self) -> None:
        super().__init__()
        self.pairs: List[Tuple[str, str]] = []
        self.scripts: List[str] = []
        self._in_script = False

    def handle_starttag(self, tag: str, attrs: List[tuple]) -> None:
        attrs_dict = {name: value or "" for name, value in attrs}

        if tag == "input" and attrs_dict.get("type", "").lower() == "hidden":
            key = attrs_dict.get("name") or attrs_dict.get("id")
            if key:
                self.pairs.append((key, attrs_dict.get("value", "")))

        elif tag == "meta":
            key = attrs_dict.get("name")
            if key:
                self.pairs.append((key, attrs_dict.get("content", "")))

        elif tag == "body":
            for name, value in attrs_dict.items():
                if name.startswith("data-"):
                    self.pairs.append((name[len("data-"):], value))

        elif tag == "script":
            self._in_script = True

    def handle_endtag(self, tag: str) -> None:
        if tag == "script":
            self._in_script = False

    def handle_data(self, data: str) -> None:
        if self._in_script and data.strip():
            self.scripts.append(data)


def _parse_page(html: str) -> _PageStructureParser:
    parser = _PageStructureParser()
    parser.feed(html)
    parser.close()
    return parser


class _PageStrategy(SessionStrategy):
    def __init__(self, page: Union[str, Path, None] = None, *, html: Optional[str] = None) -> None:
        self._page = page
        self._html = html

    def _markup(self) -> Optional[str]:
        if self._html is not None:
            return self._html
        if self._page is None:
            return None
        return _read_text(self._page)


class PageStructureStrategy(_PageStrategy):
    """Inspects hidden inputs, meta tags and ``<body data-*>`` attributes."""

    name = "page_structure"

    def extract(self) -> Optional[Candidate]:
        markup = self._markup()
        if not markup:
            return None

        candidate: Candidate = {}
        for key, value in _parse_page(markup).pairs:
            field_name = field_for_key(key.replace("-", ""))
            if field_name and value:
                candidate[field_name] = value
        return candidate or None


# ---------------------------------------------------------------------------
# 3. Embedded script state
# ---------------------------------------------------------------------------


_SCRIPT_ASSIGNMENT = re.compile(
    r"""["']?\b(?P<key>[\w$]*(?:session|Session|context|Context|user|User|office|Office|org|Org)[\w$]*)\b["']?"""
    r"""\s*[:=]\s*["'](?P<value>[^"'\n]+)["']"""
)


class ScriptStateStrategy(_PageStrategy):
    """Scans inline scripts for global assignments such as ``jSessionId = "..."``."""

    name = "script_state"

    def extract(self) -> Optional[Candidate]:
        markup = self._markup()
        if not markup:
            return None

        candidate: Candidate = {}
        for script in _parse_page(markup).scripts:
            for match in _SCRIPT_ASSIGNMENT.finditer(script):
                field_name = field_for_key(match.group("key"))
                if field_name:
                    candidate[field_name] = match.group("value")
        return candidate or None


# ---------------------------------------------------------------------------
# 4. Persisted storage (storage dump, then environment)
# ---------------------------------------------------------------------------


ENVIRONMENT_KEYS: Dict[str, str] = {
    "CRYPTICDOCS_SESSION_ID": "session_id",
    "CRYPTICDOCS_CONTEXT_ID": "context_id",
    "CRYPTICDOCS_USER_ID": "user_id",
    "CRYPTICDOCS_ORGANIZATION": "organization",
    "CRYPTICDOCS_OFFICE_ID": "office_id",
}


class PersistedStorageStrategy(SessionStrategy):
    """Reads a local/session storage dump, falling back to the environment.

    The environment is only consulted when the dump yields no session or
    context id; the two sources are never merged.

    The dump is either ``{"localStorage": {...}, "sessionStorage": {...}}`` or
    a flat key/value mapping. Session storage is read after local storage, so
    its values win.
    """

    name = "persisted_storage"

    def __init__(
        self,
        storage: SourceInput = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        read_environment: bool = True,
    ) -> None:
        self._storage = storage
        self._environ = environ
        self._read_environment = read_environment

    def _load(self) -> Mapping[str, Any]:
        if self._storage is None:
            return {}
        if isinstance(self._storage, Mapping):
            return self._storage
        text = _read_text(self._storage)
        if not text:
            return {}
        return json.loads(text)

    def extract(self) -> Optional[Candidate]:
        dump = self._load()
        areas = [dump.get("localStorage"), dump.get("sessionStorage")]
        if not any(isinstance(area, Mapping) for area in areas):
            areas = [dump]

        candidate: Candidate = {}
        for area in areas:
            if not isinstance(area, Mapping):
                continue
            for key, value in area.items():
                field_name = field_for_key(str(key))
                if field_name and value:
                    candidate[field_name] = str(value)

        if is_plausible(candidate) or not self._read_environment:
            return candidate or None

        # The environment is a separate source: used only when the dump has no ids
        environ = os.environ if self._environ is None else self._environ
        from_environment: Candidate = {}
        for env_name, field_name in ENVIRONMENT_KEYS.items():
            value = environ.get(env_name)
            if value:
                from_environment[field_name] = value
        if is_plausible(from_environment):
            return from_environment
        return candidate or from_environment or None


__all__ = [
    "Candidate",
    "ENVIRONMENT_KEYS",
    "InterceptedRequestStrategy",
    "PageStructureStrategy",
    "PersistedStorageStrategy",
    "ScriptStateStrategy",
    "SessionStrategy",
    "field_for_key",
    "is_plausible",
]
