"""Market data feed backed by ccxt's async exchange clients."""
import asyncio
import math
from functools import wraps
from typing import Any, Optional

import ccxt.async_support as ccxt
import structlog

from perpsclaw.core.config import ExchangeConfig
from perpsclaw.core.exceptions import ConfigurationError, FeedError
from perpsclaw.core.interfaces import PriceFeed

logger = structlog.get_logger(__name__)


class RetryConfig:
    """Retry settings for transient exchange failures."""
    DEFAULT_MAX_RETRIES = 2
    DEFAULT_BASE_DELAY = 1.0
    DEFAULT_MAX_DELAY = 10.0


def with_retry(
    max_retries: int = RetryConfig.DEFAULT_MAX_RETRIES,
    base_delay: float = RetryConfig.DEFAULT_BASE_DELAY,
    max_delay: float = RetryConfig.DEFAULT_MAX_DELAY,
    retryable_exceptions: tuple = (ccxt.NetworkError, ccxt.ExchangeNotAvailable, ccxt.RequestTimeout),
):
    """Retry a feed call on network errors, then surface the failure as FeedError.

    Non-retryable ccxt errors are wrapped immediately. The owning feed's
    ``max_retries`` attribute, when set, overrides the decorator default.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            retries = getattr(self, "max_retries", max_retries)
            last_exception: Optional[Exception] = None

            for attempt in range(retries + 1):
                try:
                    return await func(self, *args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e
                    if attempt < retries:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        logger.warning(
                            f"ccxt_feed.{func.__name__}.retry_attempt",
                            attempt=attempt + 1,
                            max_retries=retries,
                            delay=delay,
                            error=str(e),
                        )
                        await asyncio.sleep(delay)
                except ccxt.BaseError as e:
                    raise FeedError(f"{func.__name__} failed: {e}") from e

            logger.error(
                f"ccxt_feed.{func.__name__}.max_retries_exceeded",
                max_retries=retries,
                last_error=str(last_exception),
            )
            raise FeedError(f"{func.__name__} failed: {last_exception}") from last_exception

        return wrapper
    return decorator


class CcxtMarketFeed(PriceFeed):
    """
    Last-trade price, funding rate and open interest for one perpetual symbol.

    Usage:
        feed = CcxtMarketFeed("SOL/USDT:USDT")
        price = await feed.fetch_price()
        await feed.close()
    """

    def __init__(
        self,
        symbol: str,
        config: Optional[ExchangeConfig] = None,
        exchange: Optional[Any] = None,
        max_retries: int = RetryConfig.DEFAULT_MAX_RETRIES,
    ):
        self.symbol = symbol
        self.config = config or ExchangeConfig()
        self.max_retries = max_retries
        self.exchange = exchange or self._create_exchange()
        self.logger = logger.bind(symbol=symbol, exchange=self.config.exchange_id)

    def _create_exchange(self):
        exchange_class = getattr(ccxt, self.config.exchange_id, None)
        if exchange_class is None:
            raise ConfigurationError(f"Unknown ccxt exchange: {self.config.exchange_id}")

        exchange = exchange_class({
            'apiKey': self.config.api_key or None,
            'secret': self.config.api_secret or None,
            'enableRateLimit': True,
            'timeout': self.config.timeout_ms,
            'options': {'defaultType': 'swap'},
        })
        if self.config.testnet:
            exchange.set_sandbox_mode(True)
        return exchange

    @with_retry()
    async def fetch_price(self) -> float:
        """Last traded price for the symbol."""
        ticker = await self.exchange.fetch_ticker(self.symbol)
        price = ticker.get('last') if ticker else None
        if price is None:
            raise FeedError(f"No last price in ticker for {self.symbol}")

        price = float(price)
        if not math.isfinite(price) or price <= 0:
            raise FeedError(f"Invalid last price for {self.symbol}: {price}")
        return price

    @with_retry()
    async def fetch_funding_rate(self) -> Optional[float]:
        """Current funding rate, or None when the venue does not report one."""
        if not self.exchange.has.get('fetchFundingRate'):
            return None

        data = await self.exchange.fetch_funding_rate(self.symbol)
        rate = data.get('fundingRate') if data else None
        if rate is None:
            return None
        return float(rate)

    @with_retry()
    async def fetch_open_interest(self) -> Optional[float]:
        """Open interest in base units, or None when the venue does not report it."""
        if not self.exchange.has.get('fetchOpenInterest'):
            return None

        data = await self.exchange.fetch_open_interest(self.symbol)
        amount = data.get('openInterestAmount') if data else None
        if amount is None:
            return None
        return float(amount)

    async def close(self):
        """Close the exchange connection."""
        try:
            await self.exchange.close()
            self.logger.debug("ccxt_feed.closed")
        except Exception as e:
            self.logger.warning("ccxt_feed.close_error", error=str(e))
