"""Command line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from sentinel_agent.backtest import Backtester, load_historical_data, save_report
from sentinel_agent.config import AppConfig, load_config
from sentinel_agent.logger import setup_logger
from sentinel_agent.mexc_client import MexcFuturesClient
from sentinel_agent.pipeline import run_pipeline, to_payload
from sentinel_agent.rate_limiter import build_rate_limiter


async def _analyze(config: AppConfig, logger, symbol: str, interval: str, limit: int) -> dict:
    client = MexcFuturesClient.from_config(
        config.mexc,
        rate_limiter=build_rate_limiter(config.rate_limiting),
        logger=logger,
    )
    candles = await client.get_klines(symbol, interval, limit)
    return to_payload(run_pipeline(candles, config), candles)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sentinel-agent", description="EMA/RSI signal generator for MEXC futures")
    parser.add_argument("--config", default="config.yml", help="path to YAML config")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="fetch klines and print the current signal")
    analyze.add_argument("--symbol")
    analyze.add_argument("--interval")
    analyze.add_argument("--limit", type=int, default=100)

    backtest = sub.add_parser("backtest", help="replay the strategy over historical candles")
    backtest.add_argument("--data", help="JSON file with candles")
    backtest.add_argument("--output", default="data/backtest-results.json")

    serve = sub.add_parser("serve", help="run the HTTP workflow endpoint")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(Path(args.config))
    logger = setup_logger(
        config.logging.log_dir,
        level=config.logging.level,
        console=config.logging.console,
        file=config.logging.file,
    )

    if args.command == "analyze":
        try:
            payload = asyncio.run(
                _analyze(
                    config,
                    logger,
                    args.symbol or config.trading.symbol,
                    args.interval or config.trading.interval,
                    args.limit,
                )
            )
        except (RuntimeError, ValueError) as exc:
            logger.error("Analysis failed: {}", exc)
            print(json.dumps({"success": False, "error": str(exc)}))
            return 1
        print(json.dumps(payload, indent=2))
        return 0

    if args.command == "backtest":
        candles = load_historical_data(args.data or config.backtest.data_path, logger=logger)
        if len(candles) < 50:
            logger.error("Insufficient candle data for backtest (need at least 50 candles, got {})", len(candles))
            return 1
        report = Backtester(config, logger=logger).run(candles)
        path = save_report(report, args.output)
        logger.info(
            "Backtest done: trades={} win_rate={:.1f}% net={:.2f} USDT max_dd={:.2f}% saved={}",
            report.stats.total_trades,
            report.stats.win_rate,
            report.net_profit,
            report.stats.max_drawdown,
            path,
        )
        return 0

    import uvicorn

    from sentinel_agent.web.server import create_app

    uvicorn.run(create_app(config, logger=logger), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
