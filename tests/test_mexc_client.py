import asyncio
import json

import pytest

from sentinel_agent.config import MexcConfig
from sentinel_agent.mexc_client import MexcFuturesClient


@pytest.fixture
def client():
    return MexcFuturesClient("test_api_key", "test_secret_key", leverage=10)


class RecordingTransport:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response or {"success": True, "code": 0, "data": {}}
        self.error = error
        self.calls: list[dict] = []

    def __call__(self, method, path, params=None, headers=None, body=None):
        self.calls.append({"method": method, "path": path, "params": params, "headers": headers, "body": body})
        if self.error is not None:
            raise self.error
        return self.response


def test_constructor(client):
    assert client.api_key == "test_api_key"
    assert client.api_secret == "test_secret_key"
    assert client.leverage == 10
    assert client.base_url == "https://contract.mexc.com"


def test_from_config():
    client = MexcFuturesClient.from_config(MexcConfig(api_key="k", api_secret="s", leverage=5))
    assert client.leverage == 5
    assert client.position_mode == "isolated"


def test_generate_signature(client):
    signature = client.generate_signature("symbol=XRP_USDT&timestamp=1234567890")
    assert len(signature) == 64
    assert signature == client.generate_signature("symbol=XRP_USDT&timestamp=1234567890")


def test_build_query_string(client):
    assert client.build_query_string({"c": "3", "a": "1", "b": "2"}) == "a=1&b=2&c=3"


def test_convert_interval(client):
    assert client.convert_interval_to_futures("1m") == "Min1"
    assert client.convert_interval_to_futures("30m") == "Min30"
    assert client.convert_interval_to_futures("1h") == "Min60"
    assert client.convert_interval_to_futures("1d") == "Day1"
    assert client.convert_interval_to_futures("Min30") == "Min30"
    with pytest.raises(ValueError):
        client.convert_interval_to_futures("7m")


def test_normalize_symbol(client):
    assert client.normalize_symbol("xrpusdt") == "XRP_USDT"
    assert client.normalize_symbol("XRP/USDT") == "XRP_USDT"


def test_place_order_invalid_side(client):
    result = asyncio.run(client.place_order("XRP_USDT", "INVALID", 100))
    assert result.success is False
    assert "Invalid side" in result.error


def test_place_order_limit_requires_price(client):
    result = asyncio.run(client.place_order("XRP_USDT", "LONG", 100, "LIMIT"))
    assert result.success is False
    assert "Price is required" in result.error


def test_place_order_success(client, monkeypatch):
    transport = RecordingTransport({"success": True, "code": 0, "data": 987654})
    monkeypatch.setattr(client, "_request_sync", transport)

    result = asyncio.run(client.place_order("XRP_USDT", "SHORT", 12.5))

    assert result.success is True
    assert result.order_id == "987654"
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["path"] == "/api/v1/private/order/submit"
    body = json.loads(call["body"])
    assert body["side"] == 3
    assert body["type"] == 5
    assert body["vol"] == 12.5
    assert body["leverage"] == 10
    assert "price" not in body
    assert call["headers"]["ApiKey"] == "test_api_key"
    assert len(call["headers"]["Signature"]) == 64


def test_place_order_transport_failure(client, monkeypatch):
    monkeypatch.setattr(client, "_request_sync", RecordingTransport(error=RuntimeError("API error code=602 msg=bad")))
    result = asyncio.run(client.place_order("XRP_USDT", "LONG", 10, "LIMIT", price=0.5))
    assert result.success is False
    assert "API error" in result.error


def test_get_klines_parses_columns(client, monkeypatch):
    transport = RecordingTransport(
        {
            "success": True,
            "code": 0,
            "data": {
                "time": [1700000000, 1700001800],
                "open": [1.0, 2.0],
                "close": [1.5, 2.5],
                "high": [2.0, 3.0],
                "low": [0.5, 1.5],
                "vol": [10, 20],
            },
        }
    )
    monkeypatch.setattr(client, "_request_sync", transport)

    candles = asyncio.run(client.get_klines("XRPUSDT", "30m", limit=1))

    assert len(candles) == 1
    assert candles[0].close == 2.5
    assert candles[0].volume == 20
    assert candles[0].timestamp.startswith("2023-11-14T22:")
    assert transport.calls[0]["path"] == "/api/v1/contract/kline/XRP_USDT"
    assert transport.calls[0]["params"]["interval"] == "Min30"


def test_get_klines_failure(client, monkeypatch):
    monkeypatch.setattr(client, "_request_sync", RecordingTransport(error=RuntimeError("API error code=1")))
    with pytest.raises(RuntimeError, match="Failed to fetch klines"):
        asyncio.run(client.get_klines("XRP_USDT"))


def test_get_current_price(client, monkeypatch):
    monkeypatch.setattr(
        client, "_request_sync", RecordingTransport({"success": True, "code": 0, "data": {"lastPrice": 0.61}})
    )
    assert asyncio.run(client.get_current_price("XRP_USDT")) == 0.61


def test_requests_consume_rate_limit(client, monkeypatch):
    monkeypatch.setattr(client, "_request_sync", RecordingTransport())
    asyncio.run(client.get_account_info())
    assert client.rate_limiter.status()["ipTokens"] <= 50
