"""Tests for the source API client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from rank_sampler.api_client import FeedApiClient
from rank_sampler.collector.rate_limiter import RateLimiter
from rank_sampler.config import DEFAULT_CATEGORIES, ApiConfig, RateLimitConfig
from rank_sampler.errors import ParseError, TransportError


def make_response(status=200, body="null", headers=None, reason="OK"):
    response = MagicMock()
    response.status = status
    response.reason = reason
    response.headers = headers or {}
    response.read = AsyncMock(return_value=body if isinstance(body, bytes) else body.encode("utf-8"))
    return response


def make_context(response=None, error=None):
    context = MagicMock()
    if error is not None:
        context.__aenter__ = AsyncMock(side_effect=error)
    else:
        context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def session():
    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.close = AsyncMock()
    return mock_session


@pytest.fixture
def client(session):
    api_client = FeedApiClient(
        ApiConfig(base_url="https://api.test/v0/"),
        DEFAULT_CATEGORIES,
        retry_config=RateLimitConfig(max_retries=2, initial_backoff_sec=0),
    )
    api_client._session = session
    return api_client


class TestUrls:
    def test_category_url(self, client):
        assert client.category_url("top") == "https://api.test/v0/topstories.json"

    def test_unknown_category(self, client):
        with pytest.raises(KeyError):
            client.category_url("hot")

    def test_item_url(self, client):
        assert client.item_url(42) == "https://api.test/v0/item/42.json"


class TestFeedApiClient:
    @pytest.mark.asyncio
    async def test_get_list(self, client, session):
        session.get.return_value = make_context(make_response(body="[3, 1, 2]"))

        assert await client.get_list("new") == [3, 1, 2]
        session.get.assert_called_once_with("https://api.test/v0/newstories.json")

    @pytest.mark.asyncio
    async def test_get_item(self, client, session):
        body = '{"id": 5, "score": 10, "descendants": 2, "time": 1000, "by": "pg", "title": "x", "type": "story"}'
        session.get.return_value = make_context(make_response(body=body))

        item = await client.get_item(5)

        assert item["score"] == 10
        assert item["descendants"] == 2

    @pytest.mark.asyncio
    async def test_null_item_is_parse_error(self, client, session):
        session.get.return_value = make_context(make_response(body="null"))

        with pytest.raises(ParseError):
            await client.get_item(5)

    @pytest.mark.asyncio
    async def test_invalid_json_is_parse_error(self, client, session):
        session.get.return_value = make_context(make_response(body="<html>"))

        with pytest.raises(ParseError, match="invalid JSON"):
            await client.get_json("https://api.test/v0/item/5.json")
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_undecodable_body_is_parse_error(self, client, session):
        session.get.return_value = make_context(make_response(body=b'{"id": 5, "title": "\xff\xfe"}'))

        with pytest.raises(ParseError, match="not valid UTF-8"):
            await client.get_item(5)
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_client_error_status_is_not_retried(self, client, session):
        session.get.return_value = make_context(make_response(status=404, reason="Not Found"))

        with pytest.raises(TransportError) as exc_info:
            await client.get_item(5)

        assert exc_info.value.status == 404
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, client, session):
        session.get.side_effect = [
            make_context(make_response(status=503, reason="Service Unavailable")),
            make_context(make_response(body="[1]")),
        ]

        assert await client.get_list("top") == [1]
        assert session.get.call_count == 2

    @pytest.mark.asyncio
    async def test_server_error_gives_up_after_max_retries(self, client, session):
        session.get.side_effect = lambda url: make_context(make_response(status=500, reason="Internal Server Error"))

        with pytest.raises(TransportError) as exc_info:
            await client.get_list("top")

        assert exc_info.value.is_server_error
        assert session.get.call_count == 3

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_error(self, client, session):
        session.get.side_effect = lambda url: make_context(error=asyncio.TimeoutError())

        with pytest.raises(TransportError, match="timed out") as exc_info:
            await client.get_item(5)

        assert exc_info.value.status is None
        assert session.get.call_count == 3

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transport_error(self, client, session):
        session.get.side_effect = lambda url: make_context(error=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(TransportError, match="refused"):
            await client.get_list("top")

    @pytest.mark.asyncio
    async def test_rate_limiter_is_consulted(self, session):
        rate_limiter = MagicMock(spec=RateLimiter)
        rate_limiter.pre_request = AsyncMock()
        client = FeedApiClient(ApiConfig(base_url="https://api.test/v0"), DEFAULT_CATEGORIES, rate_limiter=rate_limiter)
        client._session = session
        session.get.side_effect = lambda url: make_context(make_response(body="[]"))

        await client.get_list("top")
        await client.get_list("new")

        assert rate_limiter.pre_request.await_count == 2

    @pytest.mark.asyncio
    async def test_prometheus_metrics(self, session):
        exporter = MagicMock()
        client = FeedApiClient(
            ApiConfig(base_url="https://api.test/v0"), DEFAULT_CATEGORIES, prometheus_exporter=exporter
        )
        client._session = session
        session.get.return_value = make_context(make_response(body="[]"))

        await client.get_list("top")

        exporter.record_fetch_operation.assert_called_once_with("list")
        exporter.time_request.assert_called_once()

    @pytest.mark.asyncio
    async def test_close(self, client, session):
        await client.close()

        session.close.assert_awaited_once()
        assert client._session is None
