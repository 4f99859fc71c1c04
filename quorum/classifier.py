"""Task classifier: turns free-text task descriptions into TaskProfiles.

Deterministic keyword scan. Domain signatures are checked in a fixed
order and the first one with a hit wins; nothing matching yields the
general domain. Classification never raises.
"""

from __future__ import annotations

import logging
import re

from quorum.schemas.task import ClassificationHints, Complexity, TaskDomain, TaskProfile

logger = logging.getLogger(__name__)

# Ordered domain signatures; first domain with a keyword hit wins
_DOMAIN_SIGNATURES: list[tuple[TaskDomain, tuple[str, ...]]] = [
    (TaskDomain.SOFTWARE, (
        "code", "coding", "program", "function", "bug", "debug", "refactor",
        "compile", "build", "deploy", "api", "database", "script", "python",
        "javascript", "typescript", "implement", "unit test", "repository",
        "运行", "代码", "编程",
    )),
    (TaskDomain.CONTENT, (
        "blog", "article", "copywriting", "marketing", "newsletter", "seo",
        "social media", "press release", "landing page", "headline", "campaign",
        "brand",
    )),
    (TaskDomain.ANALYSIS, (
        "analyze", "analyse", "analysis", "metrics", "dashboard", "forecast",
        "statistics", "trend", "report on", "compare", "evaluate", "kpi",
        "dataset",
    )),
    (TaskDomain.CREATIVE, (
        "story", "poem", "creative", "design", "logo", "illustration",
        "character", "lyrics", "brainstorm", "slogan", "concept art",
    )),
    (TaskDomain.RESEARCH, (
        "research", "literature", "study", "sources", "citation", "paper",
        "investigate", "survey of", "state of the art", "find out",
    )),
    (TaskDomain.CONVERSATION, (
        "chat", "talk", "hello", "how are you", "conversation",
        "advice", "help me decide",
    )),
]

_HIGH_COMPLEXITY = (
    "architecture", "distributed", "end-to-end", "comprehensive", "multi-step",
    "system design", "migration", "scalable", "enterprise", "optimize",
    "concurrent", "strategy",
)
_MEDIUM_COMPLEXITY = (
    "integrate", "implement", "analyze", "analyse", "compare", "design",
    "plan", "review", "outline",
)
_LOW_COMPLEXITY = (
    "simple", "quick", "short", "brief", "summarize", "list", "define",
    "translate", "fix typo", "rename",
)

# Word count above which a task is treated as high complexity
_LONG_TASK_WORDS = 200

_HIGH_STAKES_KEYWORDS = (
    "safety", "medical", "legal", "financial", "compliance", "security",
    "critical", "production", "audit", "hipaa", "gdpr", "irreversible",
)

# Base capabilities per domain
_DOMAIN_CAPABILITIES: dict[TaskDomain, tuple[str, ...]] = {
    TaskDomain.SOFTWARE: ("code",),
    TaskDomain.CONTENT: ("writing",),
    TaskDomain.ANALYSIS: ("reasoning",),
    TaskDomain.CREATIVE: ("writing", "creativity"),
    TaskDomain.RESEARCH: ("reasoning", "long_context"),
    TaskDomain.CONVERSATION: ("chat",),
    TaskDomain.GENERAL: ("chat",),
}

# Capability keyword → capability tag
_CAPABILITY_KEYWORDS: dict[str, str] = {
    "image": "vision",
    "photo": "vision",
    "screenshot": "vision",
    "diagram": "vision",
    "translate": "multilingual",
    "translation": "multilingual",
    "spanish": "multilingual",
    "french": "multilingual",
    "json": "structured_output",
    "schema": "structured_output",
    "long document": "long_context",
    "entire codebase": "long_context",
    "math": "reasoning",
    "proof": "reasoning",
    "tool": "tools",
    "function calling": "tools",
}

# Complexity → (target cost USD, target quality, target latency ms)
_TARGETS: dict[Complexity, tuple[float, float, int]] = {
    Complexity.LOW: (0.01, 0.6, 3_000),
    Complexity.MEDIUM: (0.05, 0.75, 8_000),
    Complexity.HIGH: (0.25, 0.9, 30_000),
}


def _contains(lower: str, keyword: str) -> bool:
    """Keyword hit on word boundaries; multi-word and CJK keywords use substring match."""
    if " " in keyword or not keyword.isascii():
        return keyword in lower
    return re.search(rf"\b{re.escape(keyword)}", lower) is not None


class TaskClassifier:
    """Classify task text into a TaskProfile."""

    def classify(self, text: str, hints: ClassificationHints | None = None) -> TaskProfile:
        """Build a profile for ``text``.

        Explicit hints win over the keyword scan for every field they set.
        Empty or unmatched text yields a general, medium-complexity profile.
        """
        hints = hints or ClassificationHints()
        text = text or ""
        lower = text.lower()

        domain, matched = self._scan_domain(lower)
        if hints.domain is not None:
            domain = hints.domain

        complexity = hints.complexity or self._scan_complexity(lower, len(text.split()))

        capabilities = set(_DOMAIN_CAPABILITIES[domain])
        for keyword, capability in _CAPABILITY_KEYWORDS.items():
            if _contains(lower, keyword):
                capabilities.add(capability)
        capabilities.update(hints.capabilities)

        if hints.high_stakes is not None:
            high_stakes = hints.high_stakes
        else:
            high_stakes = any(_contains(lower, kw) for kw in _HIGH_STAKES_KEYWORDS)

        cost, quality, latency = _TARGETS[complexity]
        profile = TaskProfile(
            text=text,
            domain=domain,
            complexity=complexity,
            required_capabilities=frozenset(capabilities),
            target_cost=hints.target_cost if hints.target_cost is not None else cost,
            target_quality=(
                hints.target_quality if hints.target_quality is not None else quality
            ),
            target_latency_ms=hints.target_latency_ms or latency,
            high_stakes=high_stakes,
            matched_keywords=tuple(matched),
        )
        logger.debug(
            "Classified task as %s/%s (keywords: %s)",
            profile.domain, profile.complexity, ", ".join(matched) or "none",
        )
        return profile

    def _scan_domain(self, lower: str) -> tuple[TaskDomain, list[str]]:
        for domain, keywords in _DOMAIN_SIGNATURES:
            hits = [kw for kw in keywords if _contains(lower, kw)]
            if hits:
                return domain, hits
        return TaskDomain.GENERAL, []

    def _scan_complexity(self, lower: str, word_count: int) -> Complexity:
        if word_count > _LONG_TASK_WORDS:
            return Complexity.HIGH
        if any(_contains(lower, kw) for kw in _HIGH_COMPLEXITY):
            return Complexity.HIGH
        if any(_contains(lower, kw) for kw in _MEDIUM_COMPLEXITY):
            return Complexity.MEDIUM
        if any(_contains(lower, kw) for kw in _LOW_COMPLEXITY):
            return Complexity.LOW
        return Complexity.MEDIUM
