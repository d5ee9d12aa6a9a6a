from fastapi.testclient import TestClient

from factories import bullish_candles

from sentinel_agent.rate_limiter import MexcRateLimiter
from sentinel_agent.web.server import create_app


class FakeClient:
    def __init__(self, candles=None, error=None):
        self.rate_limiter = MexcRateLimiter()
        self.candles = candles or []
        self.error = error
        self.calls = []

    async def get_klines(self, symbol, interval, limit):
        self.calls.append((symbol, interval, limit))
        if self.error:
            raise RuntimeError(self.error)
        return self.candles


def _client(fake=None):
    return TestClient(create_app(mexc_client=fake or FakeClient()))


def test_health():
    response = _client().get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_analyze_returns_signal():
    payload = {"candles": [c.to_dict() for c in bullish_candles(40)]}
    response = _client().post("/analyze", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["signal"] == "BUY"
    assert body["tradeParams"]["side"] == "LONG"


def test_analyze_rejects_short_history():
    response = _client().post("/analyze", json={"candles": [c.to_dict() for c in bullish_candles(10)]})
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_live_signal_uses_config_defaults():
    fake = FakeClient(candles=bullish_candles(40))
    response = _client(fake).get("/signal")
    assert response.status_code == 200
    assert fake.calls == [("XRP_USDT", "30m", 100)]
    assert response.json()["signal"] == "BUY"


def test_live_signal_exchange_error():
    response = _client(FakeClient(error="Failed to fetch klines")).get("/signal", params={"symbol": "BTC_USDT"})
    assert response.status_code == 502
    assert "Failed to fetch klines" in response.json()["error"]


def test_rate_limit_status():
    body = _client().get("/status/rate-limit").json()
    assert body == {"ipTokens": 60, "uidTokens": 100, "maxIpTokens": 60, "maxUidTokens": 100}


def test_analyze_rejects_out_of_range_timestamp():
    rows = [c.to_dict() for c in bullish_candles(30)]
    rows[-1]["timestamp"] = 10**22
    response = _client().post("/analyze", json={"candles": rows})
    assert response.status_code == 422
    assert response.json()["success"] is False
