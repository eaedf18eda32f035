"""Cooperative cancellation token passed through every outward async call."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot, idempotent cancellation signal bound to an asyncio event.

    Unlike ``asyncio.Task.cancel`` nothing is interrupted forcibly: callers
    check :attr:`cancelled` around their suspension points, and
    :meth:`sleep` wakes up as soon as the token fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """Wait ``seconds`` or until cancelled, whichever comes first.

        Returns True when woken by cancellation.
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled


async def cancellable_sleep(seconds: float, token: CancellationToken | None) -> bool:
    if token is None:
        await asyncio.sleep(seconds)
        return False
    return await token.sleep(seconds)
