from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class VisitTimerState:
    """Countdown of a visit against its time limit."""

    elapsed_seconds: int
    limit_seconds: int

    @property
    def remaining_seconds(self) -> int:
        return self.limit_seconds - self.elapsed_seconds

    @property
    def is_overtime(self) -> bool:
        return self.remaining_seconds < 0

    @property
    def label(self) -> str:
        """MM:SS of the absolute remaining time."""
        minutes, seconds = divmod(abs(self.remaining_seconds), 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def display(self) -> str:
        if self.is_overtime:
            return f"Excedido: +{self.label}"
        return f"Restante: {self.label}"


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# PUBLIC_INTERFACE
def visit_timer(
    check_in_time: datetime,
    now: Optional[datetime] = None,
    limit_minutes: int = 20,
) -> VisitTimerState:
    """Compute the timer state of a visit that started at check_in_time."""
    current = _aware(now or datetime.now(tz=timezone.utc))
    elapsed = int((current - _aware(check_in_time)).total_seconds())
    return VisitTimerState(elapsed_seconds=elapsed, limit_seconds=limit_minutes * 60)
