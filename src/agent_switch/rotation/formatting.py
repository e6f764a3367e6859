"""Human-readable rendering of durations and selection results."""

from datetime import timedelta

from agent_switch.rotation.models import SelectionResult


# Scores at or below this mark a profile as in cooldown
COOLDOWN_SCORE_THRESHOLD = -9000


def format_duration(delta: timedelta) -> str:
    """Compact duration: ``45s``, ``12m``, ``3h``, ``3h 20m``, ``2d``, ``2d 5h``."""
    seconds = abs(delta.total_seconds())

    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m"

    total_hours = int(seconds // 3600)
    if seconds < 86400:
        minutes = int(seconds // 60) % 60
        if minutes == 0:
            return f"{total_hours}h"
        return f"{total_hours}h {minutes}m"

    days, hours = divmod(total_hours, 24)
    if hours == 0:
        return f"{days}d"
    return f"{days}d {hours}h"


def format_result(result: SelectionResult | None) -> str:
    """Multi-line summary: recommendation with reasons, alternatives, cooldowns."""
    if result is None:
        return "No selection result"

    lines = [f"Recommended: {result.selected}"]

    selected = result.score_for(result.selected)
    if selected is not None:
        for reason in selected.reasons:
            prefix = "  + " if reason.positive else "  - "
            lines.append(prefix + reason.text)

    alternatives = [
        s
        for s in result.alternatives
        if s.name != result.selected and s.score > COOLDOWN_SCORE_THRESHOLD
    ]
    if alternatives:
        lines.append("")
        lines.append("Alternatives:")
        for score in alternatives:
            # First negative reason, else first reason
            reason = next((r.text for r in score.reasons if not r.positive), "")
            if not reason and score.reasons:
                reason = score.reasons[0].text
            lines.append(f"  {score.name} - {reason}" if reason else f"  {score.name}")

    cooldowns = [
        s for s in result.alternatives if s.score <= COOLDOWN_SCORE_THRESHOLD
    ]
    if cooldowns:
        lines.append("")
        lines.append("In cooldown:")
        for score in cooldowns:
            if score.reasons:
                lines.append(f"  {score.name} - {score.reasons[0].text}")
            else:
                lines.append(f"  {score.name}")

    return "\n".join(lines) + "\n"
