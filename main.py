"""
PerpsClaw - Main Entry Point

Runs one autonomous perpetual-futures agent against live market data with a
paper trading account.

Usage:
    # Check configuration
    python main.py --agent wolf --check

    # Run the momentum agent
    python main.py --agent shark

    # Run the grid agent on another market
    python main.py --agent grid --symbol BTC/USDT:USDT
"""

import argparse
import asyncio
import signal
from typing import Dict, Optional

import structlog

from perpsclaw.core.config import AgentConfig, perpsclaw_config
from perpsclaw.core.engine import AgentRunner
from perpsclaw.core.exceptions import ConfigurationError
from perpsclaw.core.models import AgentName
from perpsclaw.exchange import CcxtMarketFeed, PaperAccount
from perpsclaw.strategies import create_strategy
from perpsclaw.utils.audit import StructlogAuditSink
from perpsclaw.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


class AgentBot:
    """
    Wires one agent's runner to its collaborators and owns its lifecycle.

    - Market data: ccxt feed for the configured exchange
    - Position and execution: paper account sized to the agent's budget
    - Audit: structured log events with an in-memory tail
    """

    def __init__(self, agent: AgentName, symbol: Optional[str] = None):
        self.agent = AgentName(agent)
        overrides = {"symbol": symbol} if symbol else {}
        self.config: AgentConfig = perpsclaw_config.agent(self.agent, **overrides)

        # Components
        self.feed: Optional[CcxtMarketFeed] = None
        self.account: Optional[PaperAccount] = None
        self.audit: Optional[StructlogAuditSink] = None
        self.runner: Optional[AgentRunner] = None

    def initialize(self):
        """Create all components."""
        logger.info(
            "bot.initializing",
            agent=self.agent.value,
            symbol=self.config.symbol,
            exchange=perpsclaw_config.exchange.exchange_id,
            trading_mode=perpsclaw_config.exchange.trading_mode,
        )

        self.feed = CcxtMarketFeed(self.config.symbol, perpsclaw_config.exchange)
        self.account = PaperAccount.from_config(self.config)
        self.audit = StructlogAuditSink(perpsclaw_config.logging.audit_history_size)

        strategy = create_strategy(
            self.agent,
            grid_config=perpsclaw_config.grid,
            adaptive=self.config.adaptive_enabled,
            regime_filter=self.config.regime_filter_enabled,
        )

        self.runner = AgentRunner(
            config=self.config,
            strategy=strategy,
            feed=self.feed,
            account=self.account,
            executor=self.account,
            audit=self.audit,
        )
        logger.info("bot.initialized", strategy=strategy.name)

    async def run(self):
        """Run the agent loop until SIGINT/SIGTERM."""
        if self.runner is None:
            raise RuntimeError("Bot not initialized. Call initialize() first.")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)

        try:
            await self.runner.run()
        except Exception as e:
            logger.error("bot.error", error=str(e), exc_info=True)
            raise
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Release exchange connections and report the final state."""
        logger.info(
            "bot.shutdown",
            status=self.runner.get_status() if self.runner else None,
            account=self.account.get_summary() if self.account else None,
        )
        if self.feed:
            await self.feed.close()

    def _signal_handler(self):
        """Handle shutdown signals."""
        logger.info("bot.shutdown_signal_received")
        if self.runner:
            self.runner.stop()


def check_configuration(config: AgentConfig) -> Dict:
    """
    Check if configuration is valid.

    Returns:
        Dictionary with validation results
    """
    result = perpsclaw_config.validate_configuration(config)
    warnings = []

    if not perpsclaw_config.exchange.is_paper_trading:
        warnings.append(
            "⚠ Live trading mode set, but orders are only simulated by the paper account"
        )

    return {
        "valid": result["valid"],
        "issues": result["issues"],
        "warnings": warnings,
        "agent": config.name,
        "symbol": config.symbol,
        "trading_mode": perpsclaw_config.exchange.trading_mode,
    }


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="PerpsClaw - adaptive perpetual-futures trading agent"
    )
    parser.add_argument(
        "--agent",
        choices=[a.value for a in AgentName],
        required=True,
        help="Agent to run: shark (momentum), wolf (mean reversion), grid",
    )
    parser.add_argument("--symbol", help="Override the market symbol (ccxt format)")
    parser.add_argument("--check", action="store_true", help="Check configuration and exit")

    args = parser.parse_args()

    # Setup logging
    setup_logging(perpsclaw_config.logging)

    bot = AgentBot(AgentName(args.agent), symbol=args.symbol)
    config_check = check_configuration(bot.config)

    for warning in config_check["warnings"]:
        print(warning)

    if args.check:
        print("\n" + "=" * 60)
        print("           CONFIGURATION CHECK")
        print("=" * 60)

        if config_check["valid"]:
            print("\n✓ Configuration is valid")
        else:
            print("\n✗ Configuration errors:")
            for issue in config_check["issues"]:
                print(f"   - {issue}")

        print(f"\nAgent: {config_check['agent']}")
        print(f"Symbol: {config_check['symbol']}")
        print(f"Trading Mode: {config_check['trading_mode']}")
        print("\n" + "=" * 60)
        return

    if not config_check["valid"]:
        raise ConfigurationError("; ".join(config_check["issues"]))

    bot.initialize()
    await bot.run()


if __name__ == "__main__":
    asyncio.run(main())
