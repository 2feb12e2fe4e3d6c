from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, aclosing, suppress
from typing import Any, AsyncIterator, Callable

import httpx

from .decoder import StreamDecoder
from .exceptions import (
    RetryExhausted,
    StreamDecodeFailure,
    TokenAcquisitionFailed,
    TransportFailure,
    UpstreamError,
)
from .http_client import CurlCffiClient
from .log_sanitizer import mask_token
from .logging_config import logger
from .models import ChatPayload, Message, Model
from .settings import UPSTREAM_COOKIES, Settings, build_browser_headers, settings
from .telemetry import TelemetryHeaders, current_telemetry
from .token_provider import TOKEN_HEADER, TokenProvider

INVALID_TOKEN_MARKER = "ERR_INVALID_VQD"
REFRESH_STATUS_CODES = frozenset({418, 429})

_END_OF_STREAM = object()


def _default_session_client(cfg: Settings) -> CurlCffiClient:
    return CurlCffiClient(
        timeout=cfg.turn_timeout,
        impersonate=cfg.impersonate,
        cookies=UPSTREAM_COOKIES,
        proxies=cfg.proxy,
    ).open()


class ChatSession:
    """
    One conversation with the upstream chat service.

    The session owns its token pair, its message history and a private
    transport (and therefore cookie jar). `send` and `clear` are serialised
    by a per-session lock, so overlapping callers queue up instead of
    interleaving history.
    """

    def __init__(
        self,
        model: Model,
        *,
        token: str,
        client: Any,
        token_provider: TokenProvider,
        cfg: Settings | None = None,
        telemetry: TelemetryHeaders | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self.model = model
        self.token = token
        self.old_token = token
        self.messages: list[Message] = []
        self.retry_count = 0
        self.telemetry = telemetry or current_telemetry(self._cfg)
        self._client = client
        self._token_provider = token_provider
        self._lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        model: Model = Model.GPT4_MINI,
        *,
        cfg: Settings | None = None,
        token_provider: TokenProvider | None = None,
        client_factory: Callable[[], Any] | None = None,
        telemetry: TelemetryHeaders | None = None,
    ) -> "ChatSession":
        """
        Acquire a token and open a fresh transport for a new conversation.
        Raises TokenAcquisitionFailed when the status endpoint gives nothing.
        """
        cfg = cfg or settings
        token_provider = token_provider or TokenProvider(cfg)
        token = await token_provider.acquire()
        if not token:
            raise TokenAcquisitionFailed()

        client = client_factory() if client_factory else _default_session_client(cfg)
        logger.info("chat session created: model=%s token=%s", model.value, mask_token(token))
        return cls(
            model,
            token=token,
            client=client,
            token_provider=token_provider,
            cfg=cfg,
            telemetry=telemetry,
        )

    @property
    def history(self) -> list[Message]:
        return list(self.messages)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, content: str) -> AsyncIterator[str]:
        """
        Run one turn and yield the answer fragments as they arrive.

        Failures before the stream starts raise TokenAcquisitionFailed,
        TransportFailure, UpstreamError or RetryExhausted; failures while
        streaming raise StreamDecodeFailure (or StreamReadFailure) after the
        fragments received so far were yielded. The assistant reply enters
        the history only once the stream was fully drained. The session
        stays locked until the iterator is exhausted or closed.
        """
        async with self._lock:
            await self._ensure_token()
            self._record_user_message(content)
            self.retry_count = 0
            stack, resp = await self._dispatch()
            async with stack, aclosing(self._stream_answer(resp)) as fragments:
                async for fragment in fragments:
                    yield fragment

    async def complete(self, content: str) -> str:
        return "".join([fragment async for fragment in self.send(content)])

    async def clear(self) -> None:
        async with self._lock:
            self.messages = []
            self.token = await self._token_provider.acquire()
            self.old_token = self.token
            self.retry_count = 0
        if not self.token:
            logger.warning("session cleared without a token; next turn will try again")

    async def _ensure_token(self) -> None:
        if self.token:
            return
        self.token = await self._token_provider.acquire()
        if not self.token:
            raise TokenAcquisitionFailed()

    def _record_user_message(self, content: str) -> None:
        message = Message(role="user", content=content)
        if self.messages and self.messages[-1].role == "user":
            # The previous turn failed before an answer was recorded.
            self.messages[-1] = message
        else:
            self.messages.append(message)

    def _build_payload(self) -> dict:
        return ChatPayload(model=self.model, messages=self.messages).to_wire()

    def _build_headers(self) -> dict[str, str]:
        headers = build_browser_headers(self._cfg)
        headers.update(
            {
                "Accept": "text/event-stream",
                "Content-Type": "application/json",
                "Origin": self._cfg.upstream_origin,
                TOKEN_HEADER: self.token,
            }
        )
        headers.update(self.telemetry.as_headers())
        return headers

    async def _dispatch(self) -> tuple[AsyncExitStack, Any]:
        """
        POST the current history until upstream accepts it.

        Anti-bot rejections refresh the token and replay the same history,
        at most `max_retries` times. Returns the open streaming response
        together with the exit stack that closes it.
        """
        while True:
            stack = AsyncExitStack()
            try:
                resp = await stack.enter_async_context(
                    self._client.stream(
                        "POST",
                        self._cfg.chat_url,
                        json=self._build_payload(),
                        headers=self._build_headers(),
                        timeout=self._cfg.turn_timeout,
                    )
                )
                if resp.status_code == httpx.codes.OK:
                    self._accept(resp)
                    return stack.pop_all(), resp
                body = (await resp.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError as exc:
                logger.warning("chat request transport error: %s", exc)
                raise TransportFailure(f"chat request failed: {exc}") from exc
            finally:
                await stack.aclose()

            status_code = resp.status_code
            if status_code not in REFRESH_STATUS_CODES and INVALID_TOKEN_MARKER not in body:
                logger.warning("upstream error %s: %s", status_code, body[:500])
                raise UpstreamError(status_code, body)

            logger.warning(
                "turn rejected by upstream (status=%s), refreshing token", status_code
            )
            await asyncio.sleep(self._cfg.retry_backoff_seconds)
            self.token = await self._token_provider.acquire()
            if not self.token or self.retry_count >= self._cfg.max_retries:
                raise RetryExhausted(status_code, body, self.retry_count)
            self.retry_count += 1
            logger.info(
                "retrying turn (attempt %d/%d)", self.retry_count, self._cfg.max_retries
            )

    def _accept(self, resp: Any) -> None:
        new_token = resp.headers.get(TOKEN_HEADER)
        if new_token:
            self.old_token, self.token = self.token, new_token
        self.retry_count = 0

    async def _stream_answer(self, resp: Any) -> AsyncIterator[str]:
        """
        Decode on a separate task and hand fragments over through a bounded
        queue; a full queue pauses the decoder until the consumer catches up.
        """
        decoder = StreamDecoder()
        fragments: asyncio.Queue = asyncio.Queue(maxsize=self._cfg.stream_queue_size)
        errors: asyncio.Queue = asyncio.Queue(maxsize=1)

        async def produce() -> None:
            try:
                async for fragment in decoder.decode(resp.aiter_bytes()):
                    await fragments.put(fragment)
            except Exception as exc:
                errors.put_nowait(exc)
            await fragments.put(_END_OF_STREAM)

        task = asyncio.create_task(produce())
        try:
            while True:
                fragment = await fragments.get()
                if fragment is _END_OF_STREAM:
                    break
                yield fragment
        finally:
            if not task.done():
                task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if not errors.empty():
            exc = errors.get_nowait()
            if isinstance(exc, StreamDecodeFailure):
                logger.warning("answer stream failed after %d chars: %s", len(decoder.text), exc)
            raise exc

        answer = decoder.text
        if answer:
            self.messages.append(Message(role="assistant", content=answer))
        logger.info(
            "turn complete: model=%s answer_chars=%d history=%d",
            self.model.value,
            len(answer),
            len(self.messages),
        )


__all__ = ["ChatSession", "INVALID_TOKEN_MARKER", "REFRESH_STATUS_CODES"]
