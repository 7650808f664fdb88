"""Tests for cancellation tokens."""

from __future__ import annotations

import threading
import time

from chainspine.execution import CancellationToken, current_token, use_token


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.is_cancelled is False
        assert token.is_paused is False

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled is True

    def test_pause_resume(self):
        token = CancellationToken()

        assert token.pause() is True
        assert token.pause() is False
        assert token.is_paused is True
        assert token.resume() is True
        assert token.resume() is False

    def test_cannot_pause_cancelled(self):
        token = CancellationToken()
        token.cancel()
        assert token.pause() is False

    def test_cancel_releases_pause(self):
        token = CancellationToken()
        token.pause()
        token.cancel()

        assert token.is_paused is False
        assert token.wait_while_paused(0.01) is False

    def test_wait_times_out_while_paused(self):
        token = CancellationToken()
        token.pause()

        assert token.wait_while_paused(0.02) is False

    def test_wait_released_by_resume(self):
        token = CancellationToken()
        token.pause()
        outcome = []

        waiter = threading.Thread(target=lambda: outcome.append(token.wait_while_paused(5)))
        waiter.start()
        time.sleep(0.05)
        token.resume()
        waiter.join(5)

        assert outcome == [True]


class TestCurrentToken:
    def test_default_none(self):
        assert current_token() is None

    def test_use_token_scopes(self):
        token = CancellationToken()

        with use_token(token) as active:
            assert active is token
            assert current_token() is token
        assert current_token() is None
