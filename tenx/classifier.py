"""Heuristic request classification into model tiers."""

import re

from tenx.config import ModelTier

# Any match forces the smart tier.
COMPLEX_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"implement|create|build|develop|design",
        r"refactor|rewrite|restructure|redesign",
        r"debug|investigate|analyze|diagnose",
        r"multiple\s+files",
        r"across\s+(the\s+)?(codebase|project|repo)",
        r"architecture|system|infrastructure",
    )
)

SIMPLE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(what|how|why|when|where|who|which|explain|describe)",
        r"^(list|show|tell|give)",
        r"fix\s+(this|the)\s+(typo|error|bug)",
        r"add\s+(a\s+)?comment",
        r"rename\s+\w+\s+to",
    )
)

SHORT_INPUT_CHARS = 100


def classify_heuristic(text: str) -> ModelTier | None:
    """Classify text by pattern rules.

    Complex patterns are checked before simple ones. Returns None when
    neither list matches (or the input is empty) so the caller can apply
    its own default tier.
    """
    if not text:
        return None

    for pattern in COMPLEX_PATTERNS:
        if pattern.search(text):
            return "smart"

    for pattern in SIMPLE_PATTERNS:
        if pattern.search(text):
            return "superfast" if len(text) < SHORT_INPUT_CHARS else "fast"

    return None


def classify_with_default(text: str, default: ModelTier = "smart") -> ModelTier:
    """Heuristic verdict, or `default` when there is none."""
    return classify_heuristic(text) or default


def classify(text: str, default: ModelTier = "smart") -> ModelTier:
    """Pick a model tier for the latest user text."""
    return classify_with_default(text, default)
