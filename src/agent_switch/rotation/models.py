"""Result types for profile rotation."""

from dataclasses import dataclass, field
from enum import StrEnum

from agent_switch.exceptions import ValidationError


class Algorithm(StrEnum):
    """Profile selection algorithms."""

    SMART = "smart"
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"

    @classmethod
    def parse(cls, value: str) -> "Algorithm":
        """Parse a user-supplied algorithm name ("round-robin" is accepted).

        Raises:
            ValidationError: If the name is not a known algorithm
        """
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError as e:
            choices = ", ".join(a.value for a in cls)
            raise ValidationError(
                f"unknown rotation algorithm {value!r} (expected one of: {choices})"
            ) from e


@dataclass(frozen=True)
class Reason:
    """Why a profile scored the way it did."""

    text: str
    positive: bool


@dataclass
class ProfileScore:
    name: str
    score: float
    reasons: list[Reason] = field(default_factory=list)


@dataclass
class SelectionResult:
    """Outcome of a selection.

    ``alternatives`` holds every scored profile, selected one included,
    sorted by score descending.
    """

    selected: str
    alternatives: list[ProfileScore]
    algorithm: Algorithm

    def score_for(self, name: str) -> ProfileScore | None:
        for candidate in self.alternatives:
            if candidate.name == name:
                return candidate
        return None


@dataclass
class UsageInfo:
    """Live rate-limit usage for one profile, as reported by the provider."""

    profile_name: str
    primary_percent: int = 0
    secondary_percent: int = 0
    availability_score: int = 0
    error: str = ""
