# tests/test_lifecycle.py
"""
Tests for the opt-in shutdown signal binding.
"""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock

import pytest

from llmsession.lifecycle import install_shutdown_signals


@pytest.fixture
def fake_loop():
    """A loop stand-in that records signal handlers and runs tasks on the real loop."""
    loop = MagicMock()
    loop.handlers = {}
    loop.add_signal_handler.side_effect = lambda sig, cb, *args: loop.handlers.__setitem__(sig, (cb, args))
    loop.create_task.side_effect = lambda coro: asyncio.get_running_loop().create_task(coro)
    return loop


def fire(loop, sig):
    callback, args = loop.handlers[sig]
    callback(*args)


class TestInstallShutdownSignals:
    @pytest.mark.asyncio
    async def test_registers_default_signals(self, fake_loop):
        install_shutdown_signals(MagicMock(), loop=fake_loop)
        assert set(fake_loop.handlers) == {signal.SIGINT, signal.SIGTERM}

    @pytest.mark.asyncio
    async def test_signal_runs_shutdown_and_stops_loop(self, fake_loop):
        responder = MagicMock()
        responder.shutdown = AsyncMock()
        done = install_shutdown_signals(responder, loop=fake_loop)

        fire(fake_loop, signal.SIGTERM)
        await asyncio.wait_for(done.wait(), timeout=1)

        responder.shutdown.assert_awaited_once()
        fake_loop.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_repeated_signals_shut_down_once(self, fake_loop):
        responder = MagicMock()
        responder.shutdown = AsyncMock()
        done = install_shutdown_signals(responder, loop=fake_loop)

        fire(fake_loop, signal.SIGINT)
        fire(fake_loop, signal.SIGTERM)
        await asyncio.wait_for(done.wait(), timeout=1)

        responder.shutdown.assert_awaited_once()
        assert fake_loop.create_task.call_count == 1

    @pytest.mark.asyncio
    async def test_failed_shutdown_still_stops_loop(self, fake_loop):
        responder = MagicMock()
        responder.shutdown = AsyncMock(side_effect=RuntimeError("flush failed"))
        done = install_shutdown_signals(responder, loop=fake_loop)

        fire(fake_loop, signal.SIGINT)
        await asyncio.wait_for(done.wait(), timeout=1)

        fake_loop.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_unsupported_platform_is_tolerated(self, fake_loop):
        fake_loop.add_signal_handler.side_effect = NotImplementedError()
        install_shutdown_signals(MagicMock(), loop=fake_loop)
        assert fake_loop.handlers == {}
