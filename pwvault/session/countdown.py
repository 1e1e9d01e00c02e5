"""
Session countdown driver.

A ``SessionCountdown`` calls an async tick handler once per interval.
Every run owns a ``CancellationToken``; stopping sets the token, and both
the driver loop and the tick handler check it before doing anything, so
a tick that was already scheduled when ``stop()`` ran becomes a no-op.
"""
import asyncio
import logging
import threading
from collections.abc import Awaitable
from typing import Callable, Optional

logger = logging.getLogger("pwvault.session")


class CancellationToken:
    """One-way cancel flag, safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _cancelled_token() -> CancellationToken:
    token = CancellationToken()
    token.cancel()
    return token


class SessionCountdown:
    """Periodic tick driver for the session timer.

    Args:
        on_tick: coroutine function invoked on every tick.
        interval: seconds between ticks.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[None]],
        interval: float = 1.0
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._token = _cancelled_token()
        self._task: Optional[asyncio.Task] = None

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def active(self) -> bool:
        return not self._token.cancelled

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> CancellationToken:
        """Start a new run, stopping any previous one.

        When no event loop is running the countdown is armed but not
        driven; ticks must then come from the caller.
        """
        self.stop()
        token = CancellationToken()
        self._token = token
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, countdown armed without driver")
            return token
        self._task = loop.create_task(self._run(token))
        return token

    def stop(self) -> None:
        """Cancel the current run. Safe to call repeatedly or from a tick."""
        self._token.cancel()
        task, self._task = self._task, None
        if task is None or task.done() or task.get_loop().is_closed():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def aclose(self) -> None:
        """Stop the run and wait until its task has finished."""
        task = self._task
        self.stop()
        if task is None or task is asyncio.current_task():
            return
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, token: CancellationToken) -> None:
        while not token.cancelled:
            await asyncio.sleep(self._interval)
            if token.cancelled:
                break
            try:
                await self._on_tick()
            except Exception as err:
                logger.error("Session tick failed: %s", err)
