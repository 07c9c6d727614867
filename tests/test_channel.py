"""Tests for request signing and the HTTP request channel."""

from __future__ import annotations

import asyncio
import io
import json
from urllib.error import HTTPError, URLError

import pytest

from ycmd_client.channel import RequestChannel, encode_json, parse_json, request_hmac, then
from ycmd_client.errors import ServerStartupError, TransportFailure
from ycmd_client.supervisor import ServerSession, ServerState

SECRET = b"\x01" * 16


class TestRequestHmac:
    def test_known_value(self):
        assert request_hmac(SECRET, b'{"a":1}') == (
            "MjQ5ZGI4YWQ5MmJmNTNjYjNkY2MxYjNmOTQ3YTc5NGFhNjI3ZTY5ZDM3YzQ1OTEzNGJlYmFiYThhODQ3MWEwOQ=="
        )

    def test_one_byte_changes_the_header(self):
        assert request_hmac(SECRET, b'{"a":2}') == (
            "ZThhNTMzOGI0OGNhZDdiNDk5ZWNhYWUzMGJhZjgyNzYxMDlmYmMwZGZhNGMxMDZhYmMyMGMyNzc3MjFlNzc5Nw=="
        )
        assert request_hmac(b"\x02" + SECRET[1:], b'{"a":1}') != request_hmac(SECRET, b'{"a":1}')

    def test_header_has_no_line_breaks(self):
        assert "\n" not in request_hmac(SECRET, b"x" * 10_000)


class TestEncodeJson:
    def test_canonical_form(self):
        assert encode_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_equal_payloads_encode_identically(self):
        assert encode_json({"x": 1, "y": {"q": 2, "p": 3}}) == encode_json({"y": {"p": 3, "q": 2}, "x": 1})

    def test_non_ascii_is_utf8(self):
        assert encode_json({"s": "é"}) == '{"s":"é"}'.encode("utf-8")


def test_parse_json_empty_body():
    assert parse_json("") is None
    assert parse_json("[1]") == [1]


@pytest.fixture
def channel(supervisor, opener) -> RequestChannel:
    return RequestChannel(supervisor, opener=opener)


class TestBuildRequest:
    def test_signs_exact_body(self, channel):
        session = ServerSession(process=None, secret=SECRET, host="127.0.0.1", port=6000)
        request = channel.build_request(session, "/completions", {"a": 1})

        assert request.full_url == "http://127.0.0.1:6000/completions"
        assert request.get_method() == "POST"
        assert request.data == b'{"a":1}'
        assert request.get_header("Content-type") == "application/json"
        assert request.get_header("X-ycm-hmac") == request_hmac(SECRET, b'{"a":1}')

    def test_get_signs_empty_body(self, channel):
        session = ServerSession(process=None, secret=SECRET, host="localhost", port=7000)
        request = channel.build_request(session, "/healthy", method="GET")

        assert request.get_method() == "GET"
        assert request.data is None
        assert request.get_header("X-ycm-hmac") == request_hmac(SECRET, b"")

    def test_custom_header_name(self, supervisor, opener):
        channel = RequestChannel(supervisor, hmac_header="X-Custom-Hmac", opener=opener)
        session = ServerSession(process=None, secret=SECRET, host="localhost", port=7000)
        request = channel.build_request(session, "/x", {})
        assert request.get_header("X-custom-hmac") == request_hmac(SECRET, b"{}")


class TestSend:
    def test_starts_server_lazily_and_posts(self, channel, supervisor, opener, process_factory):
        opener.responses["/event_notification"] = [{"kind": "ERROR"}]

        async def scenario():
            return await channel.send("/event_notification", {"event_name": "FileReadyToParse"})

        result = asyncio.run(scenario())

        assert result == [{"kind": "ERROR"}]
        assert len(process_factory.spawned) == 1
        assert supervisor.state == ServerState.RUNNING
        request = opener.requests[0]
        assert request.full_url == "http://127.0.0.1:6000/event_notification"
        assert request.get_header("X-ycm-hmac") == request_hmac(supervisor.session.secret, request.data)

    def test_reuses_running_server(self, channel, process_factory):
        async def scenario():
            await channel.send("/a", {})
            await channel.send("/b", {})

        asyncio.run(scenario())
        assert len(process_factory.spawned) == 1

    def test_restart_signs_with_new_secret(self, channel, supervisor, opener):
        async def scenario():
            await channel.send("/a", {"n": 1})
            first = supervisor.session.secret
            supervisor.start()
            await channel.send("/a", {"n": 1})
            return first, supervisor.session.secret

        first, second = asyncio.run(scenario())
        headers = [r.get_header("X-ycm-hmac") for r in opener.requests]
        assert first != second
        assert headers[0] == request_hmac(first, b'{"n":1}')
        assert headers[1] == request_hmac(second, b'{"n":1}')
        assert headers[0] != headers[1]

    def test_connection_failure_rejects_only_the_request(self, channel, supervisor, opener):
        opener.responses["/completions"] = URLError("connection refused")

        async def scenario():
            return await channel.send("/completions", {})

        with pytest.raises(TransportFailure) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.status is None
        assert "connection refused" in str(excinfo.value)
        assert supervisor.is_running()

    def test_http_error_carries_status_and_message(self, channel, opener):
        body = json.dumps({"exception": {"TYPE": "RuntimeError"}, "message": "boom"}).encode("utf-8")
        opener.responses["/run_completer_command"] = lambda request: HTTPError(
            request.full_url, 500, "Internal Server Error", {}, io.BytesIO(body)
        )

        async def scenario():
            return await channel.send("/run_completer_command", {})

        with pytest.raises(TransportFailure) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.status == 500
        assert "boom" in str(excinfo.value)
        assert '"message": "boom"' in excinfo.value.body

    def test_unparseable_response(self, channel, opener):
        opener.responses["/completions"] = "<html>not json</html>"

        async def scenario():
            return await channel.send("/completions", {})

        with pytest.raises(TransportFailure, match="invalid response"):
            asyncio.run(scenario())

    def test_startup_failure_is_raised_synchronously(self, channel, process_factory, opener):
        process_factory.output = "noise\n"

        async def scenario():
            channel.send("/completions", {})

        with pytest.raises(ServerStartupError):
            asyncio.run(scenario())
        assert opener.requests == []


class TestThen:
    def test_transforms_result(self):
        async def scenario():
            source = asyncio.get_running_loop().create_future()
            chained = then(source, lambda v: v * 2)
            source.set_result(21)
            return await chained

        assert asyncio.run(scenario()) == 42

    def test_propagates_exception(self):
        async def scenario():
            source = asyncio.get_running_loop().create_future()
            chained = then(source, lambda v: v)
            source.set_exception(TransportFailure("down"))
            return await chained

        with pytest.raises(TransportFailure, match="down"):
            asyncio.run(scenario())

    def test_propagates_cancellation(self):
        async def scenario():
            source = asyncio.get_running_loop().create_future()
            chained = then(source, lambda v: v)
            source.cancel()
            await asyncio.sleep(0)
            return chained.cancelled()

        assert asyncio.run(scenario())

    def test_transform_error_rejects(self):
        async def scenario():
            source = asyncio.get_running_loop().create_future()
            chained = then(source, lambda v: v["missing"])
            source.set_result({})
            return await chained

        with pytest.raises(KeyError):
            asyncio.run(scenario())
