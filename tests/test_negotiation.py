"""Tests for doorway.server.negotiation: sub-router return values to Responses."""

import json

import pytest

from doorway.errors import ConfigurationError
from doorway.http.response import Redirect, Response
from doorway.server.negotiation import negotiate


class TestNegotiatePassthrough:
    def test_response_passthrough(self) -> None:
        original = Response(body="hello", status=201)
        assert negotiate(original) is original

    def test_redirect(self) -> None:
        result = negotiate(Redirect("/login"))
        assert result.status == 302
        assert ("Location", "/login") in result.headers

    def test_redirect_301(self) -> None:
        assert negotiate(Redirect("/new", status=301)).status == 301


class TestNegotiatePlainValues:
    def test_str_is_html(self) -> None:
        result = negotiate("<p>hi</p>")
        assert result.status == 200
        assert "text/html" in result.content_type
        assert result.text == "<p>hi</p>"

    def test_bytes_is_octet_stream(self) -> None:
        result = negotiate(b"\x00\x01")
        assert result.content_type == "application/octet-stream"
        assert result.body == b"\x00\x01"

    def test_dict_is_json(self) -> None:
        result = negotiate({"status": "alive", "lastHeartbeat": 1})
        assert "application/json" in result.content_type
        assert json.loads(result.text) == {"status": "alive", "lastHeartbeat": 1}

    def test_list_is_json(self) -> None:
        assert json.loads(negotiate([1, 2]).text) == [1, 2]

    def test_none_is_204(self) -> None:
        result = negotiate(None)
        assert result.status == 204
        assert result.body == ""


class TestNegotiateTuples:
    def test_status_override(self) -> None:
        result = negotiate(({"error": "gone"}, 410))
        assert result.status == 410
        assert json.loads(result.text) == {"error": "gone"}

    def test_status_and_headers(self) -> None:
        result = negotiate(("moved", 200, {"X-Port": "8080"}))
        assert result.header("X-Port") == "8080"


class TestNegotiateUnsupported:
    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Cannot convert int"):
            negotiate(42)
