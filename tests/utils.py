from __future__ import annotations

import json

import httpx

from duckchat.token_provider import TOKEN_HEADER


def sse_body(*events: str) -> bytes:
    """Frame payload strings as `data: ...` lines."""
    return "".join(f"data: {event}\n" for event in events).encode("utf-8")


def answer_response(*fragments: str, token: str | None = "vqd-next") -> httpx.Response:
    events = [json.dumps({"message": fragment}) for fragment in fragments]
    headers = {TOKEN_HEADER: token} if token else {}
    return httpx.Response(
        200,
        content=sse_body(*events, "[DONE]"),
        headers={"content-type": "text/event-stream", **headers},
    )


class ChunkedStream(httpx.AsyncByteStream):
    """
    Response body delivered in the given chunks, optionally breaking off
    with a read error afterwards.
    """

    def __init__(self, chunks: list[bytes], *, fail_with: Exception | None = None) -> None:
        self._chunks = chunks
        self._fail_with = fail_with

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._fail_with is not None:
            raise self._fail_with

    async def aclose(self) -> None:
        return None


class FakeUpstream:
    """
    Scripted stand-in for the status and chat endpoints.

    `tokens` are handed out in order by the status endpoint ("" means the
    header is missing); once exhausted, tokens are numbered. `chat_responses`
    are consumed in order by the chat endpoint; a callable entry receives
    the request and may raise to simulate transport errors.
    """

    def __init__(self) -> None:
        self.tokens: list[str] = []
        self.chat_responses: list = []
        self.chat_payloads: list[dict] = []
        self.chat_headers: list[httpx.Headers] = []
        self.status_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/status"):
            self.status_calls += 1
            token = self.tokens.pop(0) if self.tokens else f"vqd-{self.status_calls}"
            return httpx.Response(200, headers={TOKEN_HEADER: token} if token else {})

        self.chat_payloads.append(json.loads(request.content))
        self.chat_headers.append(request.headers)
        response = self.chat_responses.pop(0)
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
