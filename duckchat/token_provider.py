from __future__ import annotations

from typing import Any, Callable

import httpx

from .http_client import CurlCffiClient
from .log_sanitizer import mask_token
from .logging_config import logger
from .settings import UPSTREAM_COOKIES, Settings, build_browser_headers, settings

TOKEN_HEADER = "x-vqd-4"

# Returns an unopened client usable as an async context manager
# (CurlCffiClient in production, httpx.AsyncClient in tests).
ClientFactory = Callable[[], Any]


class TokenProvider:
    """
    Fetches the short-lived x-vqd-4 token from the status endpoint.

    `acquire()` reports failure as an empty string and never retries;
    the retry policy belongs to the chat session.
    """

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> CurlCffiClient:
        return CurlCffiClient(
            timeout=self._cfg.token_timeout,
            impersonate=self._cfg.impersonate,
            cookies=UPSTREAM_COOKIES,
            proxies=self._cfg.proxy,
        )

    def _headers(self) -> dict[str, str]:
        headers = build_browser_headers(self._cfg)
        headers.update(
            {
                "Accept": "*/*",
                "Cache-Control": "no-store",
                "x-vqd-accept": "1",
            }
        )
        return headers

    async def acquire(self) -> str:
        try:
            async with self._client_factory() as client:
                resp = await client.get(
                    self._cfg.status_url,
                    headers=self._headers(),
                    timeout=self._cfg.token_timeout,
                )
        except httpx.HTTPError as exc:
            logger.warning("token acquisition failed: %s", exc)
            return ""

        token = resp.headers.get(TOKEN_HEADER) or ""
        if not token:
            logger.warning(
                "status endpoint answered %s without %s header",
                resp.status_code,
                TOKEN_HEADER,
            )
            return ""
        logger.debug("acquired chat token %s", mask_token(token))
        return token


__all__ = ["TOKEN_HEADER", "ClientFactory", "TokenProvider"]
