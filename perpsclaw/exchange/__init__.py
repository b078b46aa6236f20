"""Reference collaborators: ccxt market data and a paper trading account."""

from perpsclaw.exchange.ccxt_feed import CcxtMarketFeed, RetryConfig, with_retry
from perpsclaw.exchange.paper import PaperAccount

__all__ = [
    "CcxtMarketFeed",
    "PaperAccount",
    "RetryConfig",
    "with_retry",
]
