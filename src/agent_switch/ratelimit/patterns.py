"""Default rate-limit patterns per provider.

Patterns are matched against single lines of CLI output. Providers not
listed here fall back to the Claude set.
"""

DEFAULT_PROVIDER = "claude"

DEFAULT_PATTERNS: dict[str, tuple[str, ...]] = {
    "claude": (
        r"(?i)rate.?limit",
        r"(?i)usage.?limit",
        r"(?i)capacity",
        r"\b429\b",
        r"(?i)too.?many.?requests",
        r"(?i)exceeded.*quota",
        r"(?i)quota.*exceeded",
    ),
    "codex": (
        r"(?i)rate.?limit",
        r"(?i)quota.?exceeded",
        r"\b429\b",
        r"(?i)too.?many.?requests",
        r"(?i)exceeded.*rate",
        r"(?i)slow.?down",
    ),
    "gemini": (
        r"(?i)RESOURCE_EXHAUSTED",
        r"(?i)quota",
        r"(?i)rate.?limit",
        r"\b429\b",
        r"(?i)too.?many.?requests",
    ),
}


def default_patterns(provider: str) -> tuple[str, ...]:
    """Default pattern strings for ``provider`` (Claude's for unknown ones)."""
    return DEFAULT_PATTERNS.get(provider, DEFAULT_PATTERNS[DEFAULT_PROVIDER])


def provider_from_string(value: str) -> str:
    """Normalize a provider name, mapping unknown names to Claude."""
    provider = value.strip().lower()
    return provider if provider in DEFAULT_PATTERNS else DEFAULT_PROVIDER
