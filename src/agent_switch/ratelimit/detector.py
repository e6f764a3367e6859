"""Rate-limit detection over live CLI output.

The detector is sticky: once a line matches, ``detected`` stays True until
``reset()`` so a burst of error output produces a single handoff.
"""

import codecs
import re
import threading
from collections.abc import Callable, Iterable
from functools import lru_cache

from structlog import get_logger

from agent_switch.exceptions import ValidationError
from agent_switch.ratelimit.patterns import default_patterns, provider_from_string


logger = get_logger(__name__)

# Lines longer than this without a newline are checked as-is
MAX_LINE_BUFFER = 64 * 1024


@lru_cache(maxsize=None)
def _compiled_defaults(provider: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in default_patterns(provider))


def compile_patterns(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    """Compile custom pattern strings.

    Raises:
        ValidationError: If any pattern is not a valid regular expression
    """
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ValidationError(
                f"invalid rate limit pattern {pattern!r}: {e}",
                details={"pattern": pattern},
            ) from e
    return tuple(compiled)


class RateLimitDetector:
    """Matches output lines against a provider's rate-limit patterns."""

    def __init__(self, provider: str, patterns: Iterable[str] | None = None) -> None:
        self.provider = provider_from_string(provider)
        custom = list(patterns or ())
        if custom:
            self._patterns = compile_patterns(custom)
        else:
            self._patterns = _compiled_defaults(self.provider)

        self._lock = threading.Lock()
        self._detected = False
        self._reason = ""

    @property
    def patterns(self) -> tuple[re.Pattern[str], ...]:
        return self._patterns

    def check(self, line: str) -> bool:
        """Check one line of output.

        Returns:
            True if a rate limit was detected now or on an earlier line
        """
        with self._lock:
            if self._detected:
                return True

            for pattern in self._patterns:
                match = pattern.search(line)
                if match:
                    self._detected = True
                    self._reason = match.group(0).strip()
                    logger.info(
                        "rate_limit_detected",
                        provider=self.provider,
                        reason=self._reason,
                    )
                    return True

        return False

    @property
    def detected(self) -> bool:
        with self._lock:
            return self._detected

    @property
    def reason(self) -> str:
        """Matched text of the line that triggered detection."""
        with self._lock:
            return self._reason

    def reset(self) -> None:
        with self._lock:
            self._detected = False
            self._reason = ""


class LineBuffer:
    """Splits chunked output into lines and feeds them to a detector.

    Each complete line (without its trailing ``\\r``) goes to the detector
    first and then to ``on_line``. A pattern split across two writes is
    still found because matching happens on whole lines.
    """

    def __init__(
        self,
        detector: RateLimitDetector,
        on_line: Callable[[str], None] | None = None,
        max_buffer: int = MAX_LINE_BUFFER,
    ) -> None:
        self.detector = detector
        self.on_line = on_line
        self.max_buffer = max_buffer
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()

    def write(self, data: str | bytes) -> int:
        """Buffer ``data`` and process every complete line.

        Returns:
            Number of characters (or bytes) accepted
        """
        with self._lock:
            if isinstance(data, bytes):
                text = self._decoder.decode(data)
            else:
                text = data
            self._buffer += text
            lines: list[str] = []
            while True:
                idx = self._buffer.find("\n")
                if idx == -1:
                    break
                lines.append(self._buffer[:idx])
                self._buffer = self._buffer[idx + 1 :]

            if len(self._buffer) > self.max_buffer:
                lines.append(self._buffer)
                self._buffer = ""

        for line in lines:
            self._emit(line)
        return len(data)

    def flush(self) -> None:
        """Process any partial line left in the buffer."""
        with self._lock:
            remainder = self._buffer + self._decoder.decode(b"", final=True)
            self._buffer = ""
        if remainder:
            self._emit(remainder)

    def _emit(self, line: str) -> None:
        line = line.removesuffix("\r")
        self.detector.check(line)
        if self.on_line is not None:
            self.on_line(line)
