from __future__ import annotations


class DuckChatError(RuntimeError):
    """Base class of every failure a conversation turn can end with."""


class TokenAcquisitionFailed(DuckChatError):
    """The status endpoint did not hand out an x-vqd-4 token."""

    def __init__(self, message: str = "unable to acquire a chat token") -> None:
        super().__init__(message)


class TransportFailure(DuckChatError):
    """Connection error or timeout while dispatching a turn."""


class UpstreamError(DuckChatError):
    """Upstream answered with a non-retryable error status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"upstream error {status_code}: {body}")


class RetryExhausted(DuckChatError):
    """
    Anti-bot rejections kept coming after the refresh-and-retry budget
    was spent, or the token could not be refreshed in between.
    """

    def __init__(self, status_code: int, body: str, attempts: int) -> None:
        self.status_code = status_code
        self.body = body
        self.attempts = attempts
        super().__init__(
            f"upstream rejected the turn after {attempts} retries "
            f"(last status {status_code}): {body}"
        )


class StreamDecodeFailure(DuckChatError):
    """The answer stream broke off after it had started."""


class StreamReadFailure(StreamDecodeFailure):
    """Low-level read error on the response body."""


class UnsupportedModel(ValueError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unsupported model: {name}")


class SessionNotFound(KeyError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(session_id)


__all__ = [
    "DuckChatError",
    "TokenAcquisitionFailed",
    "TransportFailure",
    "UpstreamError",
    "RetryExhausted",
    "StreamDecodeFailure",
    "StreamReadFailure",
    "UnsupportedModel",
    "SessionNotFound",
]
