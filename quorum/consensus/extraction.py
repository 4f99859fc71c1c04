"""Self-report extraction from participant responses.

Pulls a confidence value, reasoning, suggestions and concerns out of
free-text responses using labeled-section pattern matching.
"""

from __future__ import annotations

import re

# Explicit "Confidence: 85%" style self-report
_CONFIDENCE_RE = re.compile(
    r"confidence(?:\s+level)?\s*[:=\-]?\s*(\d{1,3})\s*%?", re.IGNORECASE,
)

_CERTAINTY_WORDS = ("definitely", "certainly", "clearly", "obviously")
_UNCERTAINTY_WORDS = ("maybe", "perhaps", "possibly", "might", "could")

# Heuristic confidence bounds when no explicit value is given
_HEURISTIC_BASE = 70
_HEURISTIC_STEP = 10
_HEURISTIC_MIN = 50
_HEURISTIC_MAX = 95

_MAX_ITEMS = 5
_MIN_ITEM_CHARS = 10
_MIN_PARAGRAPH_CHARS = 50


def _section_re(names: str) -> re.Pattern[str]:
    # Label at line start (optionally markdown-decorated), body runs to a
    # blank line or the next line starting with a letter or heading
    return re.compile(
        rf"^[ \t#*>]*(?:{names})\b[ \t*]*:?[ \t*]*"
        r"(?P<body>.*?)(?=\n[ \t]*\n|\n[ \t]*[A-Za-z#]|\Z)",
        re.IGNORECASE | re.DOTALL | re.MULTILINE,
    )


_REASONING_RE = _section_re(r"reasoning|rationale")
_SUGGESTION_RES = [
    _section_re(r"suggestions?"),
    _section_re(r"recommend(?:ations?|s)?"),
    _section_re(r"propos(?:e|als?)"),
]
_CONCERN_RES = [
    _section_re(r"concerns?"),
    _section_re(r"risks?"),
    _section_re(r"issues?"),
    _section_re(r"problems?"),
]

_BULLET_RE = re.compile(r"(?:^|\n)[ \t]*(?:[-•*]|\d+[.)])[ \t]+")


def _count_words(lower: str, words: tuple[str, ...]) -> int:
    return sum(1 for w in words if re.search(rf"\b{w}\b", lower))


def extract_confidence(content: str) -> float:
    """Confidence on a 0-100 scale.

    An explicit ``confidence: NN%`` wins (clamped to 0-100). Otherwise
    ``70 + 10·(certainty words − uncertainty words)`` clamped to [50, 95].
    """
    match = _CONFIDENCE_RE.search(content)
    if match:
        return float(max(0, min(100, int(match.group(1)))))

    lower = content.lower()
    delta = _count_words(lower, _CERTAINTY_WORDS) - _count_words(lower, _UNCERTAINTY_WORDS)
    value = _HEURISTIC_BASE + _HEURISTIC_STEP * delta
    return float(max(_HEURISTIC_MIN, min(_HEURISTIC_MAX, value)))


def extract_reasoning(content: str) -> str:
    """The labeled reasoning section, else the first substantial paragraph."""
    match = _REASONING_RE.search(content)
    if match and match.group("body").strip():
        return match.group("body").strip()
    for paragraph in content.split("\n\n"):
        if len(paragraph.strip()) > _MIN_PARAGRAPH_CHARS:
            return paragraph.strip()
    return ""


def _split_items(body: str) -> list[str]:
    parts = _BULLET_RE.split(body)
    items = []
    for part in parts:
        item = " ".join(part.split())
        if len(item) > _MIN_ITEM_CHARS:
            items.append(item)
    return items


def _extract_sections(content: str, patterns: list[re.Pattern[str]]) -> list[str]:
    items: list[str] = []
    for pattern in patterns:
        match = pattern.search(content)
        if not match:
            continue
        for item in _split_items(match.group("body")):
            if item not in items:
                items.append(item)
    return items[:_MAX_ITEMS]


def extract_suggestions(content: str) -> list[str]:
    """Up to five suggestion items from suggestion/recommend/propose sections."""
    return _extract_sections(content, _SUGGESTION_RES)


def extract_concerns(content: str) -> list[str]:
    """Up to five concern items from concern/risk/issue/problem sections."""
    return _extract_sections(content, _CONCERN_RES)
