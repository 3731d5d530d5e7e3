"""Tests for the single-resolution completion sink."""

import asyncio

import pytest

from procqueue.sink import CompletionSink
from procqueue.types import WorkerProcess


def _worker():
    return WorkerProcess(request_id="r1", target="w.py", args=())


async def test_success_reaches_future_and_callback():
    calls = []
    sink = CompletionSink(asyncio.get_running_loop(), lambda e, w: calls.append((e, w)))
    worker = _worker()

    assert sink.succeed(worker) is True
    assert await sink.future is worker
    assert calls == [(None, worker)]


async def test_only_first_outcome_is_delivered():
    calls = []
    sink = CompletionSink(asyncio.get_running_loop(), lambda e, w: calls.append((e, w)))
    worker = _worker()

    sink.succeed(worker)
    assert sink.fail(RuntimeError("late"), worker) is False
    assert sink.succeed(worker) is False

    assert sink.delivered
    assert len(calls) == 1
    assert sink.future.result() is worker


async def test_failure_without_callback():
    sink = CompletionSink(asyncio.get_running_loop())
    error = OSError("nope")

    sink.fail(error)

    with pytest.raises(OSError, match="nope"):
        await sink.future


async def test_callback_error_is_contained(caplog):
    def explode(error, worker):
        raise KeyError("bug")

    sink = CompletionSink(asyncio.get_running_loop(), explode)
    sink.succeed(_worker())

    assert sink.future.done()
    assert "callback raised" in caplog.text


async def test_cancelled_future_still_notifies_callback():
    calls = []
    sink = CompletionSink(asyncio.get_running_loop(), lambda e, w: calls.append(w))
    sink.future.cancel()
    worker = _worker()

    assert sink.succeed(worker) is True
    assert calls == [worker]
