import httpx
import pytest

from duckchat.token_provider import TOKEN_HEADER, TokenProvider


def _provider(cfg, handler) -> TokenProvider:
    return TokenProvider(
        cfg,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_acquire_returns_token_header(cfg):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, headers={TOKEN_HEADER: "vqd-abc"})

    token = await _provider(cfg, handler).acquire()

    assert token == "vqd-abc"
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "GET"
    assert str(request.url) == cfg.status_url
    assert request.headers["x-vqd-accept"] == "1"
    assert request.headers["Cache-Control"] == "no-store"
    assert request.headers["User-Agent"] == cfg.user_agent


@pytest.mark.asyncio
async def test_acquire_returns_empty_when_header_missing(cfg):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    assert await _provider(cfg, handler).acquire() == ""


@pytest.mark.asyncio
async def test_acquire_returns_empty_on_transport_error(cfg):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    assert await _provider(cfg, handler).acquire() == ""


@pytest.mark.asyncio
async def test_acquire_returns_empty_on_timeout(cfg):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    assert await _provider(cfg, handler).acquire() == ""


@pytest.mark.asyncio
async def test_acquire_does_not_retry(cfg):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    assert await _provider(cfg, handler).acquire() == ""
    assert calls == 1


def test_default_client_carries_upstream_cookies(cfg):
    client = TokenProvider(cfg)._default_client()

    assert client.cookies["dcm"] == "3"
    assert client.cookies["isRecentChatOn"] == "1"
    assert client.timeout == cfg.token_timeout
    assert client.is_closed
