"""Progress, throughput and elapsed-time figures for a running job."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class Progress:
    """Derived progress of a job at one point in time."""

    percentage: Optional[float] = None      # None while the total is unknown
    rate_per_second: float = 0.0
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def compute_progress(
    processed: int,
    total: int,
    started_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> Progress:
    """
    Compute percentage complete, throughput and elapsed time.

    Args:
        processed: Items processed so far
        total: Best-effort total, <= 0 when unknown
        started_at: When the job started running (None before it starts)
        now: Reference time, defaults to the current UTC time

    Returns:
        Progress snapshot
    """
    if started_at is None:
        elapsed_ms = 0
    else:
        now = now or datetime.now(timezone.utc)
        elapsed_ms = max(0, int((now - started_at).total_seconds() * 1000))

    percentage = None
    if total > 0:
        percentage = min(100.0, processed * 100.0 / total)

    rate = processed * 1000.0 / elapsed_ms if elapsed_ms > 0 else 0.0

    return Progress(percentage=percentage, rate_per_second=rate, elapsed_ms=elapsed_ms)
