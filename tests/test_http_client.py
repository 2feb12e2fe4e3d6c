import httpx
import pytest
from curl_cffi.const import CurlECode, CurlHttpVersion
from curl_cffi.curl import CurlError

from duckchat.http_client import CurlCffiClient


class FakeResponse:
    status_code = 200
    headers = {"x-vqd-4": "vqd-from-curl"}


@pytest.mark.asyncio
async def test_client_opens_session_with_its_own_cookies(monkeypatch):
    created: list[dict] = []

    class FakeSession:
        def __init__(self, **kwargs):
            created.append(kwargs)

        async def close(self):
            return None

    monkeypatch.setattr("duckchat.http_client.AsyncSession", FakeSession, raising=True)

    first = CurlCffiClient(cookies={"dcm": "3"}).open()
    second = CurlCffiClient(cookies={"dcm": "3"}).open()
    first.cookies["extra"] = "1"

    assert first._session is not second._session
    assert created[1]["cookies"] == {"dcm": "3"}
    await first.aclose()
    assert first.is_closed
    assert not second.is_closed


@pytest.mark.asyncio
async def test_get_retries_http2_stream_error_with_http1(monkeypatch):
    calls: list[dict] = []

    class FakeSession:
        def __init__(self, **_kwargs):
            pass

        async def close(self):
            return None

        async def get(self, url, **kwargs):
            calls.append({"url": url, "kwargs": kwargs})
            if kwargs.get("http_version") is None:
                raise CurlError("h2 broken", CurlECode.HTTP2_STREAM)
            return FakeResponse()

    monkeypatch.setattr("duckchat.http_client.AsyncSession", FakeSession, raising=True)

    async with CurlCffiClient(impersonate="chrome120") as client:
        resp = await client.get("https://example.invalid/status")

    assert resp.headers["x-vqd-4"] == "vqd-from-curl"
    assert len(calls) == 2
    assert calls[0]["kwargs"]["impersonate"] == "chrome120"
    assert calls[1]["kwargs"]["http_version"] == int(CurlHttpVersion.V1_1)


@pytest.mark.asyncio
async def test_get_maps_curl_errors_to_httpx_error(monkeypatch):
    class FakeSession:
        def __init__(self, **_kwargs):
            pass

        async def close(self):
            return None

        async def get(self, *_args, **_kwargs):
            raise CurlError("connect failed", CurlECode.COULDNT_CONNECT)

    monkeypatch.setattr("duckchat.http_client.AsyncSession", FakeSession, raising=True)

    async with CurlCffiClient() as client:
        with pytest.raises(httpx.HTTPError):
            await client.get("https://example.invalid/status")


@pytest.mark.asyncio
async def test_stream_retries_http2_stream_error_and_reads_body(monkeypatch):
    stream_calls: list[dict] = []

    class FakeStreamResponse:
        status_code = 200
        headers = {}

        async def aiter_content(self, chunk_size=8192):
            yield b'data: {"message":"ok"}\n'
            yield b"data: [DONE]\n"

    class FakeStreamContext:
        def __init__(self, *, should_fail: bool):
            self._should_fail = should_fail

        async def __aenter__(self):
            if self._should_fail:
                raise CurlError("h2 broken", CurlECode.HTTP2_STREAM)
            return FakeStreamResponse()

        async def __aexit__(self, exc_type, exc, tb):
            return False

    class FakeSession:
        def __init__(self, **_kwargs):
            pass

        async def close(self):
            return None

        def stream(self, method, url, **kwargs):
            stream_calls.append({"method": method, "url": url, "kwargs": kwargs})
            return FakeStreamContext(should_fail=kwargs.get("http_version") is None)

    monkeypatch.setattr("duckchat.http_client.AsyncSession", FakeSession, raising=True)

    async with CurlCffiClient(proxies="http://proxy.invalid:3128") as client:
        async with client.stream("POST", "https://example.invalid/chat", json={"x": 1}) as resp:
            assert resp.status_code == 200
            chunks = [chunk async for chunk in resp.aiter_bytes()]

    assert chunks == [b'data: {"message":"ok"}\n', b"data: [DONE]\n"]
    assert len(stream_calls) == 2
    assert stream_calls[0]["kwargs"]["proxy"] == "http://proxy.invalid:3128"
    assert stream_calls[1]["kwargs"]["http_version"] == int(CurlHttpVersion.V1_1)


@pytest.mark.asyncio
async def test_stream_read_error_surfaces_as_httpx_error(monkeypatch):
    class FakeStreamResponse:
        status_code = 200
        headers = {}

        async def aiter_content(self, chunk_size=8192):
            yield b"data: "
            raise CurlError("recv failure", CurlECode.RECV_ERROR)

    class FakeStreamContext:
        async def __aenter__(self):
            return FakeStreamResponse()

        async def __aexit__(self, exc_type, exc, tb):
            return False

    class FakeSession:
        def __init__(self, **_kwargs):
            pass

        async def close(self):
            return None

        def stream(self, method, url, **kwargs):
            return FakeStreamContext()

    monkeypatch.setattr("duckchat.http_client.AsyncSession", FakeSession, raising=True)

    async with CurlCffiClient() as client:
        async with client.stream("POST", "https://example.invalid/chat") as resp:
            with pytest.raises(httpx.HTTPError):
                async for _chunk in resp.aiter_bytes():
                    pass


def test_closed_client_refuses_requests():
    client = CurlCffiClient()
    with pytest.raises(RuntimeError):
        client.stream("POST", "https://example.invalid/chat")
