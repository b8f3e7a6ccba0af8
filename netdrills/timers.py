"""Steady timers whose waits complete on the running asyncio event loop."""

from __future__ import annotations

import argparse
import asyncio
import errno
import os
import sys
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Sequence

SUCCESS = 0
CANCELLED = errno.ECANCELED

WaitHandler = Callable[[int], object]


def _describe(code: int) -> str:
    return "Success" if code == SUCCESS else os.strerror(code)


@dataclass(eq=False)
class _Wait:
    handler: Optional[WaitHandler]
    future: "asyncio.Future[int]"
    handle: Optional[asyncio.TimerHandle] = None


class Timer:
    """A one-shot timer; each wait completes with SUCCESS or CANCELLED.

    Expiry times are on the ``time.monotonic`` clock, which the default event
    loops use as well.
    """

    def __init__(self, seconds: Optional[float] = None) -> None:
        self._expiry = 0.0
        self._waits: Deque[_Wait] = deque()
        if seconds is not None:
            self.expires_after(seconds)

    @property
    def expiry(self) -> float:
        return self._expiry

    def expires_after(self, seconds: float) -> int:
        """Set the expiry relative to now; pending waits are cancelled and counted."""
        cancelled = self.cancel()
        self._expiry = time.monotonic() + seconds
        return cancelled

    def async_wait(self, handler: Optional[WaitHandler] = None) -> "asyncio.Future[int]":
        """Call ``handler`` with the result code when the wait ends.

        Must be called from a running event loop. The returned future resolves
        to the same code once the handler has run.
        """
        loop = asyncio.get_running_loop()
        wait = _Wait(handler, loop.create_future())
        wait.handle = loop.call_at(self._expiry, self._expire, wait)
        self._waits.append(wait)
        return wait.future

    def cancel_one(self) -> int:
        """Cancel the oldest pending wait; return how many were cancelled."""
        if not self._waits:
            return 0
        wait = self._waits.popleft()
        if wait.handle is not None:
            wait.handle.cancel()
        wait.future.get_loop().call_soon(self._complete, wait, CANCELLED)
        return 1

    def cancel(self) -> int:
        """Cancel every pending wait; return how many were cancelled."""
        count = 0
        while self.cancel_one():
            count += 1
        return count

    def _expire(self, wait: _Wait) -> None:
        if wait in self._waits:
            self._waits.remove(wait)
        self._complete(wait, SUCCESS)

    @staticmethod
    def _complete(wait: _Wait, code: int) -> None:
        if wait.future.done():
            return
        try:
            if wait.handler is not None:
                wait.handler(code)
        except Exception as exc:
            wait.future.set_exception(exc)
            return
        wait.future.set_result(code)


async def _demo(scale: float, lines: List[str]) -> None:
    first, second, third = Timer(), Timer(), Timer()
    first.expires_after(1 * scale)
    second.expires_after(2 * scale)
    third.expires_after(2 * scale)

    def report(label: str) -> WaitHandler:
        def handler(code: int) -> None:
            lines.append(f"Timer {label} stoped with ec = {code}, {_describe(code)}")

        return handler

    def on_first(code: int) -> None:
        report("1")(code)
        third.cancel_one()

    await asyncio.gather(
        first.async_wait(on_first),
        second.async_wait(report("2")),
        third.async_wait(report("3.1")),
        third.async_wait(report("3.2")),
    )


def run_demo(scale: float = 1.0) -> List[str]:
    """Run three timers, one cancelling a wait on another; return the report lines."""
    if scale < 0:
        raise ValueError("scale must not be negative")
    lines: List[str] = []
    asyncio.run(_demo(scale, lines))
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Timer cancellation demonstration.")
    parser.add_argument("--scale", type=float, default=1.0, help="seconds per time unit")
    args = parser.parse_args(argv)
    try:
        lines = run_demo(args.scale)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return errno.EINVAL
    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())