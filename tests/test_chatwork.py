"""
Unit tests for the Chatwork client: retry policy, and the HTTP contract
against a local aiohttp server.

Run with: python -m pytest tests/test_chatwork.py -v
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from shimekiri.domain.common.errors import NotifyError
from shimekiri.infra.notify.chatwork import ChatworkClient


def _client(sleeps: list[float]) -> ChatworkClient:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return ChatworkClient("token", "123", retry_delay=2.0, sleep=fake_sleep)


def test_send_succeeds_first_try():
    async def run():
        sleeps: list[float] = []
        client = _client(sleeps)
        with patch.object(client, "_post_message", AsyncMock(return_value={"message_id": "1"})) as post:
            await client.send_message("hello")
        post.assert_awaited_once_with("hello")
        assert sleeps == []

    asyncio.run(run())


def test_send_retries_then_succeeds():
    async def run():
        sleeps: list[float] = []
        client = _client(sleeps)
        post = AsyncMock(side_effect=[aiohttp.ClientError("boom"), NotifyError("HTTP 500"), {"message_id": "1"}])
        with patch.object(client, "_post_message", post):
            await client.send_message("hello")
        assert post.await_count == 3
        assert sleeps == [2.0, 2.0]

    asyncio.run(run())


def test_send_gives_up_after_three_tries():
    async def run():
        sleeps: list[float] = []
        client = _client(sleeps)
        post = AsyncMock(side_effect=asyncio.TimeoutError())
        with patch.object(client, "_post_message", post):
            with pytest.raises(NotifyError):
                await client.send_message("hello")
        assert post.await_count == 3
        # no sleep after the last try
        assert sleeps == [2.0, 2.0]

    asyncio.run(run())


def test_unexpected_errors_propagate_without_retry():
    async def run():
        client = _client([])
        post = AsyncMock(side_effect=RuntimeError("bug"))
        with patch.object(client, "_post_message", post):
            with pytest.raises(RuntimeError):
                await client.send_message("hello")
        assert post.await_count == 1

    asyncio.run(run())


# ----- against a local HTTP server -----


def _chatwork_app(received: list[dict], statuses: list[int]) -> web.Application:
    async def post_message(request: web.Request) -> web.Response:
        form = await request.post()
        received.append({
            "path": request.path,
            "room_id": request.match_info["room_id"],
            "token": request.headers.get("X-ChatWorkToken"),
            "content_type": request.content_type,
            "body": form.get("body"),
        })
        status = statuses.pop(0) if statuses else 200
        # Chatwork answers JSON, but the client must not depend on it
        return web.Response(status=status, text="ok" if status < 300 else "server error")

    async def me(request: web.Request) -> web.Response:
        if request.headers.get("X-ChatWorkToken") != "token":
            return web.json_response({"errors": ["Invalid API token"]}, status=401)
        return web.json_response({"account_id": 1, "name": "shimekiri bot"})

    app = web.Application()
    app.router.add_post("/rooms/{room_id}/messages", post_message)
    app.router.add_get("/me", me)
    return app


def _server_client(server: test_utils.TestServer, sleeps: list[float], token: str = "token") -> ChatworkClient:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return ChatworkClient(token, "123", base_url=str(server.make_url("/")), sleep=fake_sleep)


def test_post_sends_form_body_and_token_header():
    async def run():
        received: list[dict] = []
        async with test_utils.TestServer(_chatwork_app(received, [])) as server:
            sleeps: list[float] = []
            await _server_client(server, sleeps).send_message("[info]タスク通知[/info]")

        assert received == [{
            "path": "/rooms/123/messages",
            "room_id": "123",
            "token": "token",
            "content_type": "application/x-www-form-urlencoded",
            "body": "[info]タスク通知[/info]",
        }]
        assert sleeps == []

    asyncio.run(run())


def test_non_json_success_reply_is_not_resent():
    async def run():
        received: list[dict] = []
        async with test_utils.TestServer(_chatwork_app(received, [201])) as server:
            await _server_client(server, []).send_message("hello")
        assert len(received) == 1

    asyncio.run(run())


def test_server_error_is_retried_then_raised():
    async def run():
        received: list[dict] = []
        sleeps: list[float] = []
        async with test_utils.TestServer(_chatwork_app(received, [500, 500, 500])) as server:
            with pytest.raises(NotifyError, match="500"):
                await _server_client(server, sleeps).send_message("hello")
        assert len(received) == 3
        assert sleeps == [2.0, 2.0]

    asyncio.run(run())


def test_server_error_then_success():
    async def run():
        received: list[dict] = []
        async with test_utils.TestServer(_chatwork_app(received, [503])) as server:
            await _server_client(server, []).send_message("hello")
        assert len(received) == 2

    asyncio.run(run())


def test_connection_check():
    async def run():
        async with test_utils.TestServer(_chatwork_app([], [])) as server:
            assert await _server_client(server, []).test_connection() is True
            assert await _server_client(server, [], token="wrong").test_connection() is False

    asyncio.run(run())


def test_connection_check_unreachable_host():
    async def run():
        async with test_utils.TestServer(_chatwork_app([], [])) as server:
            base_url = str(server.make_url("/"))
        # server is closed now
        client = ChatworkClient("token", "123", base_url=base_url)
        assert await client.test_connection() is False

    asyncio.run(run())
