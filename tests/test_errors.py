import pytest
import requests

from conftest import make_response
from enigma.errors import (
    HTTPStatusError,
    MissingKeyError,
    NetworkError,
    StreamInterruptedError,
    TransportError,
    classify,
    from_requests_error,
)


@pytest.mark.parametrize(
    "status, pattern",
    [
        (401, "API key invalid or unauthorized"),
        (403, "API key invalid or unauthorized"),
        (404, "Endpoint not found"),
        (429, "Rate limit exceeded"),
        (500, "Server error (500)"),
        (502, "Server error (502)"),
        (503, "Server error (503)"),
    ],
)
def test_classify_known_statuses(status, pattern):
    assert pattern in classify(HTTPStatusError(status, "detail"))


def test_classify_other_status_includes_detail():
    assert classify(HTTPStatusError(418, "short and stout")) == "API error (418): short and stout"


def test_classify_network_error():
    message = classify(NetworkError("timed out", "ReadTimeout"))
    assert message.startswith("Network error (ReadTimeout)")


def test_classify_transport_without_status_or_code():
    assert classify(TransportError("Invalid URL")) == "API error: Invalid URL"


def test_classify_plain_exception():
    assert classify(Exception("x")) == "x"


def test_classify_string():
    assert classify("plain") == "plain"


def test_classify_json_fallback():
    assert classify({"odd": 1}) == '{"odd": 1}'
    assert classify({"status": "429"}) == '{"status": "429"}'
    assert classify(None) == "null"


def test_classify_never_raises():
    class Unserialisable:
        def __repr__(self):
            return "<thing>"

    assert classify(Unserialisable()) == "<thing>"
    assert classify(ValueError()) == "ValueError()"


def test_classify_enigma_errors_use_message():
    assert "MISSING_KEY" in classify(MissingKeyError())
    assert classify(StreamInterruptedError("reset")) == "Stream interrupted: reset"


def test_http_status_error_codes():
    assert HTTPStatusError(404, "x").code == "HTTP_4XX"
    assert HTTPStatusError(503, "x").code == "HTTP_5XX"


def test_from_requests_http_error_uses_error_body():
    resp = make_response(429, {"error": {"message": "slow down", "type": "rate_limit"}})
    err = from_requests_error(requests.HTTPError("429 Client Error", response=resp))
    assert isinstance(err, HTTPStatusError)
    assert err.status == 429
    assert err.detail == "slow down"


def test_from_requests_http_error_uses_text_body():
    resp = make_response(418, text="teapot")
    err = from_requests_error(requests.HTTPError("418", response=resp))
    assert classify(err) == "API error (418): teapot"


def test_from_requests_connection_errors():
    err = from_requests_error(requests.ConnectTimeout("connect timed out"))
    assert isinstance(err, NetworkError)
    assert err.error_code == "ConnectTimeout"
    assert err.status is None

    err = from_requests_error(requests.ConnectionError("refused"))
    assert err.error_code == "ConnectionError"


def test_from_requests_other_errors():
    err = from_requests_error(requests.exceptions.InvalidURL("bad url"))
    assert type(err) is TransportError
    assert classify(err) == "API error: bad url"


@pytest.mark.parametrize(
    "error, expected",
    [
        ({"status": 429}, "Rate limit exceeded"),
        ({"status": 401}, "API key invalid or unauthorized"),
        ({"status": 503}, "Server error (503)"),
        ({"status": 418, "message": "teapot"}, "API error (418): teapot"),
        ({"code": "ETIMEDOUT"}, "Network error (ETIMEDOUT)"),
    ],
)
def test_classify_error_shaped_mappings(error, expected):
    assert expected in classify(error)


def test_classify_mapping_with_bool_status_is_json():
    assert classify({"status": True}) == '{"status": true}'
