#!/usr/bin/env python3
"""
Binary Arbitrage Engine -- single entry point.

Wires the pipeline together:
  1. Load config + logging
  2. Discover binary crypto markets
  3. Stream order books over WebSocket
  4. Gate, size-check and execute YES+NO hedges
  5. Report status until SIGINT/SIGTERM

Usage:
  uv run python run.py                  # paper trading (default)
  uv run python run.py --live           # live trading
  uv run python run.py --balance 500    # override starting balance
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal, InvalidOperation

from config import Config, ConfigurationError, load_config
from client.auth import build_clob_client
from client.clob import ClobOrderClient, OrderClient, PaperOrderClient, configure_http_timeout
from client.markets import discover_markets
from client.ws import MarketFeed
from executor.engine import ExecutionEngine
from executor.risk import RiskManager
from monitor.logger import setup_logging
from scanner.book_store import OrderBookStore
from scanner.broadcast import UpdateChannel
from scanner.normalization import NormalizationTracker
from scanner.strategy import StrategyEngine, StrategyParams

logger = logging.getLogger(__name__)


_BANNER = r"""
 ____  _                          _         _
| __ )(_)_ __   __ _ _ __ _   _  / \   _ __| |__
|  _ \| | '_ \ / _` | '__| | | |/ _ \ | '__| '_ \
| |_) | | | | | (_| | |  | |_| / ___ \| |  | |_) |
|____/|_|_| |_|\__,_|_|   \__, /_/   \_\_|  |_.__/
                          |___/      YES+NO Arbitrage Engine
"""


def _decimal_arg(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}")
    if not value.is_finite() or value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive number: {raw!r}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Binary YES+NO Arbitrage Engine")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--live", action="store_true", help="Enable live trading (disables paper mode)")
    mode.add_argument("--paper", action="store_true", help="Force paper trading regardless of PAPER_TRADING")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--balance", type=_decimal_arg, default=None, help="Starting balance (overrides INITIAL_BALANCE)")
    return parser.parse_args(argv)


def _config_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.live:
        overrides["paper_trading"] = False
    elif args.paper:
        overrides["paper_trading"] = True
    if args.balance is not None:
        overrides["initial_balance"] = args.balance
    return overrides


def build_order_client(cfg: Config) -> OrderClient:
    """Paper client unless live trading is on."""
    if cfg.paper_trading:
        logger.info("Paper trading: orders are simulated, nothing is sent to the venue")
        return PaperOrderClient()
    logger.debug("Authenticating with the CLOB...")
    configure_http_timeout(cfg.clob_http_timeout_sec)
    client = build_clob_client(cfg)
    logger.warning("LIVE TRADING ENABLED: real orders will be submitted")
    return ClobOrderClient(client)


async def _status_loop(
    interval: float,
    risk: RiskManager,
    feed: MarketFeed,
    strategy: StrategyEngine,
    store: OrderBookStore,
) -> None:
    while True:
        await asyncio.sleep(interval)
        snap = risk.snapshot()
        logger.info(
            "Status: balance=%s daily_pnl=%s safe_mode=%s feed=%s books=%d/%d trades=%d missed=%d",
            snap.current_balance, snap.daily_pnl, snap.safe_mode,
            "healthy" if feed.is_healthy() else "DEGRADED",
            store.token_count(), len(store.token_ids()),
            strategy.trades_attempted, strategy.updates_missed,
        )


async def run_engine(cfg: Config, store: OrderBookStore, tracker: NormalizationTracker) -> None:
    """Run feed + strategy + status tasks until a shutdown signal."""
    risk = RiskManager(
        initial_balance=cfg.initial_balance,
        max_daily_loss_pct=cfg.max_daily_loss_pct,
        max_trade_capital_pct=cfg.max_trade_capital_pct,
    )
    execution = ExecutionEngine(
        build_order_client(cfg),
        risk,
        order_timeout_sec=cfg.order_timeout_sec,
        emergency_pause_sec=cfg.emergency_pause_sec,
    )
    channel: UpdateChannel[str] = UpdateChannel(cfg.update_channel_capacity)
    feed = MarketFeed(
        url=cfg.poly_ws_url,
        store=store,
        tracker=tracker,
        channel=channel,
        heartbeat_interval_sec=cfg.heartbeat_interval_sec,
        backoff_max_sec=cfg.reconnect_backoff_max_sec,
        subscribe_batch_size=cfg.subscribe_batch_size,
    )
    strategy = StrategyEngine(store, tracker, execution, channel, StrategyParams.from_config(cfg))

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    def handle_signal(signum: int) -> None:
        if not shutdown.is_set():
            logger.info("Received %s, shutting down...", signal.Signals(signum).name)
            shutdown.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal, sig)
        except NotImplementedError:
            signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(handle_signal, signum))

    feed_task = asyncio.create_task(feed.run(), name="feed")
    strategy_task = asyncio.create_task(strategy.run(), name="strategy")
    status_task = asyncio.create_task(
        _status_loop(cfg.status_interval_sec, risk, feed, strategy, store), name="status",
    )

    await shutdown.wait()

    await feed.stop()
    channel.close()
    status_task.cancel()
    feed_task.cancel()
    # Let an in-flight trade finish its legs, but not an emergency pause.
    await asyncio.wait({strategy_task}, timeout=cfg.order_timeout_sec * 2)
    strategy_task.cancel()
    await asyncio.gather(feed_task, strategy_task, status_task, return_exceptions=True)

    snap = risk.snapshot()
    logger.info(
        "Shutdown complete: balance=%s daily_pnl=%s safe_mode=%s trades=%d",
        snap.current_balance, snap.daily_pnl, snap.safe_mode, strategy.trades_attempted,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = load_config(**_config_overrides(args))
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical("%s", e)
        return 1

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Log file: %s", log_file_path)
    logger.info(
        "  Mode: %s | balance=%s | trade_size=%s | min_edge=%s",
        "PAPER" if cfg.paper_trading else "LIVE",
        cfg.initial_balance, cfg.trade_size, cfg.min_edge,
    )

    markets = discover_markets(
        cfg.poly_http_url,
        crypto_tags=tuple(cfg.crypto_tags),
        limit=cfg.discovery_page_limit,
        max_pages=cfg.discovery_max_pages,
    )
    if not markets:
        logger.warning("No tradable markets found. Exiting.")
        return 0

    store = OrderBookStore()
    store.register_markets(markets)
    tracker = NormalizationTracker(
        store,
        threshold=cfg.normalization_threshold,
        required_updates=cfg.normalization_updates,
    )
    for market_id in store.market_ids():
        tracker.register(market_id)

    asyncio.run(run_engine(cfg, store, tracker))
    return 0


if __name__ == "__main__":
    sys.exit(main())
