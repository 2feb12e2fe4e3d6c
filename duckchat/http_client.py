"""
curl-cffi transport with browser TLS impersonation.

The upstream chat service fingerprints the TLS handshake, so plain httpx
gets rejected as a bot. This module wraps curl-cffi's AsyncSession behind
the small slice of the httpx.AsyncClient API the session client relies on
(`get`, `stream`, `aclose`); errors are re-raised as `httpx.HTTPError` so
callers handle one exception family whichever transport is plugged in.
"""

from typing import Any, AsyncIterator, Optional

import httpx
from curl_cffi.const import CurlECode, CurlHttpVersion
from curl_cffi.curl import CurlError
from curl_cffi.requests import AsyncSession, Response

from .logging_config import logger

_HTTP_VERSION_ALIASES: dict[str, CurlHttpVersion] = {
    "1.0": CurlHttpVersion.V1_0,
    "http/1.0": CurlHttpVersion.V1_0,
    "1.1": CurlHttpVersion.V1_1,
    "http/1.1": CurlHttpVersion.V1_1,
    "2": CurlHttpVersion.V2_0,
    "2.0": CurlHttpVersion.V2_0,
    "h2": CurlHttpVersion.V2_0,
    "http/2": CurlHttpVersion.V2_0,
}


def _normalize_http_version(value: Any) -> Any:
    """
    libcurl's CURLOPT_HTTP_VERSION only takes ints; accept the usual
    string spellings as well.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _HTTP_VERSION_ALIASES:
            return int(_HTTP_VERSION_ALIASES[key])
        raise TypeError(f"Unsupported http_version string: {value!r}")
    raise TypeError(f"Unsupported http_version type: {type(value)!r}")


def _normalize_kwargs(request_kwargs: dict[str, Any]) -> dict[str, Any]:
    if request_kwargs.get("http_version") is None:
        return request_kwargs
    normalized = dict(request_kwargs)
    normalized["http_version"] = _normalize_http_version(normalized["http_version"])
    return normalized


def _is_http2_stream_error(exc: CurlError, request_kwargs: dict[str, Any]) -> bool:
    return (
        getattr(exc, "code", None) == CurlECode.HTTP2_STREAM
        and "http_version" not in request_kwargs
    )


class StreamResponse:
    """
    httpx-shaped view of a streaming curl-cffi response.
    """

    def __init__(self, response: Response):
        self._response = response
        self.status_code = response.status_code
        self.headers = response.headers

    async def aiter_bytes(self, chunk_size: int = 8192) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_content(chunk_size=chunk_size):
                yield chunk
        except CurlError as exc:
            raise httpx.ReadError(str(exc)) from exc

    async def aread(self) -> bytes:
        try:
            return await self._response.acontent()
        except CurlError as exc:
            raise httpx.ReadError(str(exc)) from exc


class CurlCffiClient:
    """
    Long-lived curl-cffi session with its own cookie jar.

    Every ChatSession owns one instance, so cookies set by the upstream
    never leak from one conversation into another.

    Example:
        async with CurlCffiClient(timeout=30.0, cookies={"dcm": "3"}) as client:
            async with client.stream("POST", url, json=payload) as resp:
                async for chunk in resp.aiter_bytes():
                    ...
    """

    def __init__(
        self,
        timeout: float = 30.0,
        impersonate: str = "chrome",
        cookies: Optional[dict[str, str]] = None,
        proxies: Optional[dict[str, str] | str] = None,
    ):
        self.timeout = timeout
        self.impersonate = impersonate
        self.cookies = dict(cookies or {})
        self.proxies = proxies
        self._session: Optional[AsyncSession] = None

        logger.debug(
            "CurlCffiClient initialized: timeout=%s, impersonate=%s, cookies=%d, proxies=%s",
            timeout,
            impersonate,
            len(self.cookies),
            "***" if proxies else None,
        )

    def open(self) -> "CurlCffiClient":
        if self._session is None:
            self._session = AsyncSession(cookies=self.cookies)
        return self

    async def aclose(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "CurlCffiClient":
        return self.open()

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    @property
    def is_closed(self) -> bool:
        return self._session is None

    def _ensure_session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError(
                "CurlCffiClient is closed; call open() or use 'async with CurlCffiClient(...)'"
            )
        return self._session

    def _request_kwargs(self, timeout: Optional[float], **kwargs: Any) -> dict[str, Any]:
        request_kwargs = {
            "timeout": timeout if timeout is not None else self.timeout,
            "impersonate": self.impersonate,
            **kwargs,
        }
        if self.proxies:
            if isinstance(self.proxies, str):
                request_kwargs["proxy"] = self.proxies
            else:
                request_kwargs["proxies"] = self.proxies
        return request_kwargs

    async def get(
        self,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> Response:
        session = self._ensure_session()
        request_kwargs = self._request_kwargs(timeout, headers=headers, params=params, **kwargs)
        logger.debug("GET request: url=%s, timeout=%s", url, request_kwargs["timeout"])
        try:
            return await session.get(url, **_normalize_kwargs(request_kwargs))
        except CurlError as exc:
            if not _is_http2_stream_error(exc, request_kwargs):
                raise httpx.HTTPError(str(exc)) from exc
            logger.warning("curl-cffi HTTP/2 stream error, retry with HTTP/1.1: url=%s", url)
            request_kwargs["http_version"] = "1.1"
            try:
                return await session.get(url, **_normalize_kwargs(request_kwargs))
            except CurlError as retry_exc:
                raise httpx.HTTPError(str(retry_exc)) from retry_exc

    def stream(
        self,
        method: str,
        url: str,
        *,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> "StreamContextManager":
        session = self._ensure_session()
        request_kwargs = self._request_kwargs(timeout, json=json, headers=headers, **kwargs)
        logger.debug(
            "STREAM request: method=%s, url=%s, timeout=%s",
            method,
            url,
            request_kwargs["timeout"],
        )
        return StreamContextManager(session, method, url, request_kwargs)


class StreamContextManager:
    """
    `async with client.stream(...) as resp` for curl-cffi, downgrading to
    HTTP/1.1 once when the HTTP/2 stream breaks during the handshake.
    """

    def __init__(
        self,
        session: AsyncSession,
        method: str,
        url: str,
        request_kwargs: dict[str, Any],
    ):
        self._session = session
        self._method = method
        self._url = url
        self._request_kwargs = request_kwargs
        self._stream_context = None

    async def _open(self, request_kwargs: dict[str, Any]) -> Response:
        self._stream_context = self._session.stream(
            self._method, self._url, **_normalize_kwargs(request_kwargs)
        )
        return await self._stream_context.__aenter__()

    async def __aenter__(self) -> StreamResponse:
        try:
            response = await self._open(self._request_kwargs)
        except CurlError as exc:
            if not _is_http2_stream_error(exc, self._request_kwargs):
                raise httpx.HTTPError(str(exc)) from exc
            logger.warning(
                "curl-cffi HTTP/2 stream error, retry stream with HTTP/1.1: url=%s",
                self._url,
            )
            try:
                response = await self._open({**self._request_kwargs, "http_version": "1.1"})
            except CurlError as retry_exc:
                raise httpx.HTTPError(str(retry_exc)) from retry_exc
        return StreamResponse(response)

    async def __aexit__(self, *args) -> None:
        if self._stream_context:
            await self._stream_context.__aexit__(*args)
            self._stream_context = None


__all__ = ["CurlCffiClient", "StreamContextManager", "StreamResponse"]
