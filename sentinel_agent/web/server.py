"""HTTP endpoint for workflow tools: post candles, receive signal and trade setup."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import Body, FastAPI, Query
from fastapi.responses import JSONResponse
from loguru import logger as default_logger

from sentinel_agent import __version__
from sentinel_agent.config import AppConfig
from sentinel_agent.mexc_client import MexcFuturesClient
from sentinel_agent.pipeline import process_payload, run_pipeline, to_payload
from sentinel_agent.rate_limiter import build_rate_limiter


def create_app(config: AppConfig | None = None, mexc_client: MexcFuturesClient | None = None, logger=None) -> FastAPI:
    config = config or AppConfig()
    logger = logger or default_logger
    if mexc_client is None:
        mexc_client = MexcFuturesClient.from_config(
            config.mexc,
            rate_limiter=build_rate_limiter(config.rate_limiting),
            logger=logger,
        )

    app = FastAPI(title="sentinel_agent", version=__version__)
    app.state.config = config
    app.state.mexc_client = mexc_client

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "time": datetime.now(UTC).isoformat()}

    @app.post("/analyze")
    async def analyze(payload: Any = Body(...)):
        result = process_payload(payload, config, logger=logger)
        if not result["success"]:
            return JSONResponse(status_code=422, content=result)
        return result

    @app.get("/signal")
    async def live_signal(
        symbol: str | None = Query(default=None),
        interval: str | None = Query(default=None),
        limit: int = Query(default=100, ge=21, le=1000),
    ):
        try:
            candles = await mexc_client.get_klines(
                symbol or config.trading.symbol,
                interval or config.trading.interval,
                limit,
            )
            result = run_pipeline(candles, config)
        except (RuntimeError, ValueError) as exc:
            logger.error("Live signal failed: {}", exc)
            return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})
        return to_payload(result, candles)

    @app.get("/status/rate-limit")
    async def rate_limit_status() -> dict[str, Any]:
        return mexc_client.rate_limiter.status()

    return app
