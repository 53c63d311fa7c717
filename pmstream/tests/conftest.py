"""Shared fixtures."""

from unittest.mock import Mock

import pytest

from pmstream.config import FeedSettings
from pmstream.models import ApiCredentials
from pmstream.ws.dispatcher import FeedCallbacks
from pmstream.tests.fakes import FakeDialer, TimerRecorder

# Well-known throwaway key (never funded)
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


@pytest.fixture
def dialer():
    return FakeDialer()


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def callbacks():
    """FeedCallbacks whose every hook is a Mock."""
    return FeedCallbacks(
        on_book=Mock(),
        on_price_change=Mock(),
        on_tick_size_change=Mock(),
        on_last_trade_price=Mock(),
        on_order=Mock(),
        on_trade=Mock(),
        on_message=Mock(),
        on_error=Mock(),
        on_connect=Mock(),
        on_disconnect=Mock(),
        on_reconnect=Mock(),
    )


@pytest.fixture
def credentials():
    return ApiCredentials(
        key="test-api-key",
        secret="c2VjcmV0LXNlY3JldC1zZWNyZXQtc2VjcmV0LTEyMw==",
        passphrase="test-passphrase",
    )


@pytest.fixture
def settings():
    return FeedSettings(
        _env_file=None,
        max_retries=0,
        clob_url="https://clob.test",
        gamma_url="https://gamma.test",
        ws_url="wss://ws.test",
    )
