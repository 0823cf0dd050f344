"""Tests for the best-effort wrapper."""

import asyncio
import logging

import pytest

from lexroute.application.best_effort import run_best_effort


async def _value():
    return 42


async def _boom():
    raise RuntimeError("downstream unavailable")


@pytest.mark.asyncio
async def test_success_carries_value():
    outcome = await run_best_effort("value", _value())
    assert outcome.succeeded
    assert outcome.value == 42
    assert outcome.error is None


@pytest.mark.asyncio
async def test_failure_is_captured_and_logged(caplog):
    with caplog.at_level(logging.ERROR):
        outcome = await run_best_effort("boom", _boom())

    assert not outcome.succeeded
    assert outcome.value is None
    assert outcome.error == "RuntimeError: downstream unavailable"
    assert "boom" in caplog.text


@pytest.mark.asyncio
async def test_cancellation_propagates():
    async def hang():
        await asyncio.sleep(10)

    task = asyncio.ensure_future(run_best_effort("hang", hang()))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
