"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import duckchat`
works consistently in all tests, and wires sessions to a scripted upstream.
"""

import sys
from pathlib import Path

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from duckchat.models import Model  # noqa: E402
from duckchat.session import ChatSession  # noqa: E402
from duckchat.settings import settings  # noqa: E402
from duckchat.token_provider import TokenProvider  # noqa: E402
from tests.utils import FakeUpstream  # noqa: E402


@pytest.fixture
def cfg():
    return settings.model_copy(update={"retry_backoff_seconds": 0, "max_retries": 3})


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def token_provider(cfg, upstream) -> TokenProvider:
    return TokenProvider(cfg, client_factory=upstream.client)


@pytest.fixture
def make_session(cfg, upstream, token_provider):
    async def _make(model: Model = Model.GPT4_MINI) -> ChatSession:
        return await ChatSession.create(
            model,
            cfg=cfg,
            token_provider=token_provider,
            client_factory=upstream.client,
        )

    return _make
