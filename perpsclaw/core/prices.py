"""Rolling price storage: the scalar sample window and OHLC candle buckets."""

import math
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional

from perpsclaw.core.models import Candle, utc_now


class PriceSeries:
    """Bounded oldest-first window of price samples.

    Appending past ``max_size`` evicts the oldest sample.
    """

    def __init__(self, max_size: int = 200):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._prices: Deque[float] = deque(maxlen=max_size)

    def append(self, price: float) -> None:
        price = float(price)
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"Invalid price sample: {price}")
        self._prices.append(price)

    @property
    def prices(self) -> List[float]:
        """Copy of the window, oldest first."""
        return list(self._prices)

    @property
    def latest(self) -> Optional[float]:
        return self._prices[-1] if self._prices else None

    def __len__(self) -> int:
        return len(self._prices)


class CandleAggregator:
    """
    Builds fixed-duration OHLC candles from scalar samples.

    Buckets are aligned to multiples of ``interval_ms`` since the epoch. A
    sample landing in a later bucket closes the current candle (marking it
    complete) and opens a new one.
    """

    def __init__(self, interval_ms: int = 60000, max_candles: int = 100):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.interval_ms = interval_ms
        self._candles: Deque[Candle] = deque(maxlen=max_candles)

    def _bucket_start(self, ts: datetime) -> datetime:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        epoch_ms = int(ts.timestamp() * 1000)
        start_ms = epoch_ms - epoch_ms % self.interval_ms
        return datetime.fromtimestamp(start_ms / 1000, tz=timezone.utc)

    def add(self, price: float, ts: Optional[datetime] = None) -> Candle:
        """Fold one sample into the candle history and return the open candle."""
        bucket = self._bucket_start(ts or utc_now())
        current = self._candles[-1] if self._candles else None

        if current is not None and current.open_time == bucket:
            updated = current.model_copy(update={
                "high": max(current.high, price),
                "low": min(current.low, price),
                "close": price,
            })
            self._candles[-1] = updated
            return updated

        # Samples older than the open bucket are folded into it
        if current is not None and bucket < current.open_time:
            return self.add(price, current.open_time)

        if current is not None:
            self._candles[-1] = current.model_copy(update={"complete": True})

        candle = Candle(open_time=bucket, open=price, high=price, low=price, close=price)
        self._candles.append(candle)
        return candle

    @property
    def candles(self) -> List[Candle]:
        """All retained candles, oldest first; the last may be incomplete."""
        return list(self._candles)

    @property
    def complete_candles(self) -> List[Candle]:
        return [c for c in self._candles if c.complete]

    def __len__(self) -> int:
        return len(self._candles)
