"""Open interest tracking.

Open interest only means something against its own recent history, so the
tracker keeps a bounded window of timestamped readings per market.
"""

from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Optional, Tuple

from perpsclaw.core.models import OpenInterestData, utc_now

MAX_HISTORY = 100

# Readings averaged for the elevated check
AVERAGE_WINDOW = 50

# Fewer readings than this and the current value is its own average
MIN_AVERAGE_SAMPLES = 10

# Elevated when this far above the recent average
ELEVATED_RATIO = 1.2

# A 24h change beyond this percentage is a meaningful positioning shift
SIGNIFICANT_CHANGE_PCT = 5.0


class OpenInterestTracker:
    """Bounded history of open interest readings for one market."""

    def __init__(self, max_history: int = MAX_HISTORY):
        self._history: Deque[Tuple[datetime, float]] = deque(maxlen=max_history)

    def __len__(self) -> int:
        return len(self._history)

    def analyze(
        self, open_interest: float, price: float, now: Optional[datetime] = None
    ) -> OpenInterestData:
        """
        Record a reading and compare it with the tracked history.

        Args:
            open_interest: Open contracts in base units
            price: Current mark price, for the USD value
            now: Reading time (defaults to the current UTC time)

        Returns:
            OpenInterestData with the 24h change and elevated flag
        """
        now = now or utc_now()
        self._history.append((now, open_interest))

        day_ago = now - timedelta(hours=24)
        baseline = next(
            (value for ts, value in self._history if ts >= day_ago), open_interest
        )
        # Zero baseline carries no usable change
        if not baseline:
            baseline = open_interest
        change = open_interest - baseline
        change_percent = change / baseline * 100 if baseline > 0 else 0.0

        if len(self._history) > MIN_AVERAGE_SAMPLES:
            recent = list(self._history)[-AVERAGE_WINDOW:]
            average = sum(value for _, value in recent) / len(recent)
        else:
            average = open_interest

        return OpenInterestData(
            open_interest=open_interest,
            open_interest_usd=open_interest * price,
            change_24h=change,
            change_24h_percent=change_percent,
            is_elevated=open_interest > average * ELEVATED_RATIO,
        )

    def reset(self):
        self._history.clear()


def open_interest_signal(data: OpenInterestData, price_change: float) -> float:
    """Directional bias from fresh positioning.

    Open interest growing more than 5% confirms the direction price moved:
    +0.3 when price rose, -0.3 otherwise. Shrinking or steady open interest
    carries no bias.
    """
    if data.change_24h_percent > SIGNIFICANT_CHANGE_PCT:
        return 0.3 if price_change > 0 else -0.3
    return 0.0
