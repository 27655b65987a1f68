"""
Streaming primitives - cancellation token and answer accumulator.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from advisor.errors import GenerationCancelled
from memory.schemas import Message, MessageStatus


class CancellationToken:
    """
    Cooperative cancellation signal for one generation.

    The API layer cancels it when the client disconnects; the stream loop
    checks it between deltas.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled(self.reason or "cancelled")


PersistFn = Callable[[str, MessageStatus], Awaitable[Message]]


class StreamAccumulator:
    """
    Collects streamed text deltas for one assistant turn.

    ``finalize()`` is the single place the assistant turn is persisted, and
    it runs at most once. A partial finalize with no text stores nothing.
    """

    def __init__(self, persist: PersistFn) -> None:
        self._persist = persist
        self._parts: List[str] = []
        self._finalized = False
        self.message: Optional[Message] = None

    def add(self, delta: str) -> None:
        if self._finalized:
            raise RuntimeError("accumulator already finalized")
        self._parts.append(delta)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def finalize(self, status: MessageStatus = "complete") -> Optional[Message]:
        if self._finalized:
            return self.message
        self._finalized = True
        if status == "partial" and not self._parts:
            return None
        self.message = await self._persist(self.text, status)
        return self.message
