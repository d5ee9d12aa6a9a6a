from sentinel_agent.mexc_sign import build_query_string, sign_payload, signature_target, signed_headers


def test_query_string_is_sorted():
    assert build_query_string({"c": "3", "a": "1", "b": "2"}) == "a=1&b=2&c=3"


def test_query_string_encodes_spaces():
    result = build_query_string({"symbol": "XRP_USDT", "test": "hello world"})
    assert result == "symbol=XRP_USDT&test=hello%20world"


def test_query_string_encodes_parentheses():
    assert "%28test%29" in build_query_string({"test": "(test)"})


def test_query_string_drops_none():
    assert build_query_string({"a": 1, "b": None}) == "a=1"


def test_sign_payload_known_vector():
    digest = sign_payload("key", "The quick brown fox jumps over the lazy dog")
    assert digest == "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"


def test_signature_is_stable():
    assert sign_payload("secret", "test=value") == sign_payload("secret", "test=value")
    assert len(sign_payload("secret", "test=value")) == 64


def test_signed_headers():
    headers = signed_headers("key123", "secret", "symbol=XRP_USDT", request_time="1700000000000")
    assert headers["ApiKey"] == "key123"
    assert headers["Request-Time"] == "1700000000000"
    expected = sign_payload("secret", signature_target("key123", "1700000000000", "symbol=XRP_USDT"))
    assert headers["Signature"] == expected
