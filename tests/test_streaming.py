"""Tests for the cancellation token and stream accumulator."""
import pytest

from advisor.errors import GenerationCancelled
from advisor.streaming import CancellationToken, StreamAccumulator
from memory.schemas import Message


class RecordingPersist:
    def __init__(self):
        self.calls = []

    async def __call__(self, text, status):
        self.calls.append((text, status))
        return Message("c", "assistant", text, status=status, seq=len(self.calls))


def test_token_keeps_first_reason():
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()

    token.cancel("client disconnected")
    token.cancel("shutdown")

    assert token.cancelled
    assert token.reason == "client disconnected"
    with pytest.raises(GenerationCancelled):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_finalize_persists_once():
    persist = RecordingPersist()
    acc = StreamAccumulator(persist)
    acc.add("Hello")
    acc.add(" world")

    first = await acc.finalize("complete")
    second = await acc.finalize("partial")

    assert persist.calls == [("Hello world", "complete")]
    assert first is second
    assert acc.finalized


@pytest.mark.asyncio
async def test_empty_partial_is_not_persisted():
    persist = RecordingPersist()
    acc = StreamAccumulator(persist)

    assert await acc.finalize("partial") is None
    assert persist.calls == []


@pytest.mark.asyncio
async def test_add_after_finalize_fails():
    acc = StreamAccumulator(RecordingPersist())
    acc.add("x")
    await acc.finalize()
    with pytest.raises(RuntimeError):
        acc.add("y")
