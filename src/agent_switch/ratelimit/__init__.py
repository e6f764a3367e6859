"""Rate-limit detection for wrapped CLI output."""

from agent_switch.ratelimit.detector import LineBuffer, RateLimitDetector
from agent_switch.ratelimit.patterns import (
    DEFAULT_PATTERNS,
    default_patterns,
    provider_from_string,
)


__all__ = [
    "DEFAULT_PATTERNS",
    "LineBuffer",
    "RateLimitDetector",
    "default_patterns",
    "provider_from_string",
]
