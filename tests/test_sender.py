"""Tests for doorway.server.sender response emission rules."""

from doorway.http.cookies import SetCookie
from doorway.http.response import Response
from doorway.server.sender import encode_headers, send_response


class _Recorder:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def headers(self) -> dict[bytes, bytes]:
        return dict(self.messages[0]["headers"])


class TestSendResponseNoBodyStatuses:
    async def test_204_drops_body_and_sets_zero_content_length(self) -> None:
        send = _Recorder()
        await send_response(Response("unexpected-body").with_status(204), send)

        assert send.messages[0]["type"] == "http.response.start"
        assert send.headers[b"content-length"] == b"0"
        assert send.messages[1]["type"] == "http.response.body"
        assert send.messages[1]["body"] == b""

    async def test_304_drops_body(self) -> None:
        send = _Recorder()
        await send_response(Response("unexpected-body").with_status(304), send)
        assert send.headers[b"content-length"] == b"0"
        assert send.messages[1]["body"] == b""

    async def test_200_preserves_body(self) -> None:
        send = _Recorder()
        await send_response(Response("ok"), send)
        assert send.headers[b"content-length"] == b"2"
        assert send.messages[1]["body"] == b"ok"


class TestHead:
    async def test_head_advertises_length_without_body(self) -> None:
        send = _Recorder()
        await send_response(Response("hello"), send, method="HEAD")
        assert send.headers[b"content-length"] == b"5"
        assert send.messages[1]["body"] == b""


class TestEncodeHeaders:
    def test_lowercases_and_adds_cookies(self) -> None:
        response = Response("x").with_header("X-Port", "8080").with_cookie("key", "secret")
        raw = encode_headers(response)
        assert raw[0] == (b"content-type", b"text/html; charset=utf-8")
        assert (b"x-port", b"8080") in raw
        assert (b"set-cookie", SetCookie("key", "secret").to_header_value().encode()) in raw
