"""MEXC Futures (USDT-M) REST client with rate-limited async wrappers."""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from loguru import logger as default_logger

from sentinel_agent.config import MexcConfig
from sentinel_agent.mexc_sign import build_query_string, sign_payload, signed_headers
from sentinel_agent.models import Candle
from sentinel_agent.rate_limiter import MexcRateLimiter

INTERVAL_MAP: dict[str, str] = {
    "1m": "Min1",
    "5m": "Min5",
    "15m": "Min15",
    "30m": "Min30",
    "1h": "Min60",
    "4h": "Hour4",
    "8h": "Hour8",
    "1d": "Day1",
    "1w": "Week1",
    "1M": "Month1",
}

# intent -> MEXC futures side code
ORDER_SIDES: dict[str, int] = {
    "LONG": 1,
    "BUY": 1,
    "CLOSE_SHORT": 2,
    "SHORT": 3,
    "SELL": 3,
    "CLOSE_LONG": 4,
}

ORDER_TYPES: dict[str, int] = {"LIMIT": 1, "MARKET": 5}
OPEN_TYPES: dict[str, int] = {"isolated": 1, "cross": 2}


@dataclass(slots=True)
class OrderResult:
    success: bool
    symbol: str
    side: str
    type: str
    quantity: float
    price: float | None = None
    order_id: str | None = None
    error: str | None = None
    details: Any = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "orderId": self.order_id,
            "symbol": self.symbol,
            "side": self.side,
            "type": self.type,
            "quantity": self.quantity,
            "price": self.price,
            "error": self.error,
            "details": self.details,
        }


class MexcFuturesClient:
    """Async wrapper for the MEXC contract REST API."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        leverage: int = 10,
        base_url: str = "https://contract.mexc.com",
        timeout_sec: float = 10.0,
        position_mode: str = "isolated",
        rate_limiter=None,
        logger=None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.leverage = int(leverage)
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.position_mode = position_mode
        self.rate_limiter = rate_limiter or MexcRateLimiter()
        self.logger = logger or default_logger

    @classmethod
    def from_config(cls, config: MexcConfig, rate_limiter=None, logger=None) -> "MexcFuturesClient":
        return cls(
            api_key=config.api_key,
            api_secret=config.api_secret,
            leverage=config.leverage,
            base_url=config.base_url,
            timeout_sec=config.timeout_sec,
            position_mode=config.position_mode,
            rate_limiter=rate_limiter,
            logger=logger,
        )

    def generate_signature(self, payload: str) -> str:
        return sign_payload(self.api_secret, payload)

    def build_query_string(self, params: dict[str, object]) -> str:
        return build_query_string(params)

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        value = symbol.replace("/", "_").replace("-", "_").upper().strip()
        if value.endswith("USDT") and not value.endswith("_USDT"):
            value = value[:-4] + "_USDT"
        return value

    @staticmethod
    def convert_interval_to_futures(interval: str) -> str:
        if interval in INTERVAL_MAP.values():
            return interval
        try:
            return INTERVAL_MAP[interval]
        except KeyError:
            raise ValueError(f"Unsupported interval: {interval}") from None

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/api/v1/contract/ping", endpoint="default")
            return True
        except RuntimeError as exc:
            self._log_error("test_connection", exc)
            return False

    async def get_klines(
        self,
        symbol: str,
        interval: str = "30m",
        limit: int = 100,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> list[Candle]:
        """Fetch candles oldest first; `start_time`/`end_time` are epoch millis."""
        exchange_symbol = self.normalize_symbol(symbol)
        params: dict[str, object] = {
            "interval": self.convert_interval_to_futures(interval),
            "start": start_time // 1000 if start_time else None,
            "end": end_time // 1000 if end_time else None,
        }
        self.logger.info("[MEXC] Fetching klines: {} {} (limit: {})", exchange_symbol, interval, limit)
        try:
            data = await self._request(
                "GET", f"/api/v1/contract/kline/{exchange_symbol}", params, endpoint="klines"
            )
            candles = self._parse_klines(data.get("data") or {})
        except (RuntimeError, ValueError) as exc:
            self._log_error("get_klines", exc)
            raise RuntimeError(f"Failed to fetch klines: {exc}") from exc

        if limit > 0:
            candles = candles[-limit:]
        self.logger.info("[MEXC] Successfully fetched {} candles", len(candles))
        return candles

    async def get_current_price(self, symbol: str) -> float:
        try:
            data = await self._request(
                "GET", "/api/v1/contract/ticker", {"symbol": self.normalize_symbol(symbol)}, endpoint="ticker"
            )
            row = data.get("data") or {}
            price = row.get("lastPrice") if isinstance(row, dict) else None
            if price is None:
                raise ValueError("last price missing")
            return float(price)
        except (RuntimeError, ValueError) as exc:
            self._log_error("get_current_price", exc)
            raise RuntimeError(f"Failed to fetch current price: {exc}") from exc

    async def get_order_book(self, symbol: str, limit: int = 20) -> dict[str, list[dict[str, float]]]:
        try:
            data = await self._request(
                "GET",
                f"/api/v1/contract/depth/{self.normalize_symbol(symbol)}",
                {"limit": limit},
                endpoint="depth",
            )
            book = data.get("data") or {}
            return {
                "bids": [{"price": float(b[0]), "quantity": float(b[1])} for b in book.get("bids") or []],
                "asks": [{"price": float(a[0]), "quantity": float(a[1])} for a in book.get("asks") or []],
            }
        except (RuntimeError, ValueError, TypeError, IndexError) as exc:
            self._log_error("get_order_book", exc)
            raise RuntimeError(f"Failed to fetch order book: {exc}") from exc

    async def get_account_info(self) -> dict[str, Any]:
        try:
            return await self._signed_request("GET", "/api/v1/private/account/assets", endpoint="account")
        except RuntimeError as exc:
            self._log_error("get_account_info", exc)
            raise RuntimeError(f"Failed to fetch account info: {exc}") from exc

    async def set_leverage(self, symbol: str, leverage: int | None = None) -> bool:
        payload = {
            "symbol": self.normalize_symbol(symbol),
            "leverage": int(leverage or self.leverage),
            "openType": OPEN_TYPES.get(self.position_mode, 1),
            "positionType": 1,
        }
        try:
            await self._signed_request("POST", "/api/v1/private/position/change_leverage", payload, endpoint="order")
            return True
        except RuntimeError as exc:
            self._log_error("set_leverage", exc)
            return False

    async def place_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        type: str = "MARKET",
        price: float | None = None,
    ) -> OrderResult:
        """Submit an order; failures come back as ``OrderResult(success=False)``."""
        side_name = str(side).upper()
        order_type = str(type).upper()
        exchange_symbol = self.normalize_symbol(symbol)
        result = OrderResult(
            success=False,
            symbol=exchange_symbol,
            side=side_name,
            type=order_type,
            quantity=quantity,
            price=price,
        )

        if side_name not in ORDER_SIDES:
            result.error = f"Invalid side: {side}. Expected one of {', '.join(ORDER_SIDES)}"
            return result
        if order_type not in ORDER_TYPES:
            result.error = f"Invalid order type: {type}. Expected MARKET or LIMIT"
            return result
        if order_type == "LIMIT" and not price:
            result.error = "Price is required for LIMIT orders"
            return result
        if quantity <= 0:
            result.error = f"Invalid quantity: {quantity}"
            return result

        payload: dict[str, object] = {
            "symbol": exchange_symbol,
            "price": float(price) if price else None,
            "vol": float(quantity),
            "leverage": self.leverage,
            "side": ORDER_SIDES[side_name],
            "type": ORDER_TYPES[order_type],
            "openType": OPEN_TYPES.get(self.position_mode, 1),
            "externalOid": str(uuid.uuid4()),
        }
        self.logger.info("[MEXC] Placing {} {} order: {} {}", order_type, side_name, quantity, exchange_symbol)
        try:
            data = await self._signed_request("POST", "/api/v1/private/order/submit", payload, endpoint="order")
        except RuntimeError as exc:
            self._log_error("place_order", exc)
            result.error = str(exc)
            return result

        body = data.get("data")
        order_id = body.get("orderId") if isinstance(body, dict) else body
        if order_id is None:
            result.error = "exchange order id missing"
            result.details = data
            return result

        result.success = True
        result.order_id = str(order_id)
        result.raw = data
        self.logger.info("[MEXC] Order placed successfully: orderId={} symbol={}", result.order_id, exchange_symbol)
        return result

    def _parse_klines(self, data: dict[str, Any]) -> list[Candle]:
        times = data.get("time") or []
        candles: list[Candle] = []
        for i, ts in enumerate(times):
            candles.append(
                Candle.from_dict(
                    {
                        "timestamp": datetime.fromtimestamp(int(ts), UTC).isoformat(),
                        "open": data["open"][i],
                        "high": data["high"][i],
                        "low": data["low"][i],
                        "close": data["close"][i],
                        "volume": data.get("vol", [0] * len(times))[i],
                    }
                )
            )
        return candles

    async def safe_request(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
        signed: bool = False,
    ) -> dict[str, Any]:
        retries = 3
        delay = 0.5
        for attempt in range(1, retries + 1):
            try:
                if signed:
                    return await self._signed_request_once(method, path, params)
                return await asyncio.to_thread(self._request_sync, method, path, params)
            except RuntimeError as exc:
                message = str(exc).lower()
                is_retryable = any(k in message for k in ["timeout", "timed out", "httperror 5", "urlerror"])
                if not is_retryable or attempt >= retries:
                    raise
                self.logger.warning("MEXC request retry {}/{} path={} err={}", attempt, retries, path, exc)
                await asyncio.sleep(delay)
                delay *= 2
        raise RuntimeError("safe_request failed")

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
        endpoint: str = "default",
    ) -> dict[str, Any]:
        return await self.rate_limiter.execute(
            lambda: self.safe_request(method, path, params=params, signed=False), endpoint
        )

    async def _signed_request(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
        endpoint: str = "default",
    ) -> dict[str, Any]:
        return await self.rate_limiter.execute(
            lambda: self.safe_request(method, path, params=params, signed=True), endpoint
        )

    async def _signed_request_once(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
    ) -> dict[str, Any]:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        method = method.upper()
        if method == "GET":
            query = build_query_string(params)
            headers = signed_headers(self.api_key, self.api_secret, query)
            return await asyncio.to_thread(self._request_sync, "GET", path, params, headers)

        body = json.dumps(params, separators=(",", ":"))
        headers = signed_headers(self.api_key, self.api_secret, body)
        return await asyncio.to_thread(self._request_sync, method, path, params, headers, body)

    def _request_sync(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> dict[str, Any]:
        params = params or {}
        headers = headers or {"Content-Type": "application/json"}
        url = f"{self.base_url}{path}"
        method = method.upper()
        data = None

        if method == "GET":
            query = build_query_string(params)
            if query:
                url = f"{url}?{query}"
        else:
            data = (body if body is not None else json.dumps(params)).encode("utf-8")

        req = Request(url=url, data=data, method=method, headers=headers)

        try:
            with urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            raw = exc.read().decode("utf-8", errors="ignore")
            raise RuntimeError(f"HTTPError {exc.code}: {raw}") from exc
        except URLError as exc:
            raise RuntimeError(f"URLError: {exc}") from exc
        except TimeoutError as exc:
            raise RuntimeError(f"timeout: {exc}") from exc

        try:
            payload = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Invalid JSON from {path}: {raw[:200]}") from exc
        if not isinstance(payload, dict):
            return {"data": payload}
        if payload.get("success") is False or payload.get("code") not in (0, 200, None):
            raise RuntimeError(f"API error code={payload.get('code')} msg={payload.get('message') or payload.get('msg')}")
        return payload

    def _log_error(self, scope: str, exc: Exception) -> None:
        self.logger.error("[MEXC] client error [{}]: {}", scope, exc)
