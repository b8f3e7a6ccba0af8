import errno
import time

import pytest

from netdrills.timers import CANCELLED, SUCCESS, Timer, main, run_demo


@pytest.mark.asyncio
async def test_wait_completes_with_success():
    timer = Timer()
    timer.expires_after(0.01)
    seen = []
    code = await timer.async_wait(seen.append)
    assert code == SUCCESS
    assert seen == [SUCCESS]


@pytest.mark.asyncio
async def test_wait_lasts_until_expiry():
    timer = Timer(0.05)
    start = time.monotonic()
    code = await timer.async_wait()
    elapsed = time.monotonic() - start
    assert code == SUCCESS
    assert elapsed >= 0.04


@pytest.mark.asyncio
async def test_cancel_one_cancels_oldest_wait_only():
    timer = Timer(10)
    first = timer.async_wait()
    second = timer.async_wait()
    assert timer.cancel_one() == 1
    assert await first == CANCELLED
    assert not second.done()
    assert timer.cancel() == 1
    assert await second == CANCELLED


@pytest.mark.asyncio
async def test_cancel_counts_all_waits():
    timer = Timer(10)
    seen = []
    waits = [timer.async_wait(seen.append) for _ in range(3)]
    assert timer.cancel() == 3
    for wait in waits:
        assert await wait == CANCELLED
    assert seen == [CANCELLED] * 3


@pytest.mark.asyncio
async def test_expires_after_cancels_pending_wait():
    timer = Timer(10)
    wait = timer.async_wait()
    assert timer.expires_after(0.01) == 1
    assert await wait == CANCELLED
    assert await timer.async_wait() == SUCCESS


@pytest.mark.asyncio
async def test_handler_error_reaches_future():
    def broken(code):
        raise ValueError("handler failed")

    timer = Timer(0.0)
    with pytest.raises(ValueError):
        await timer.async_wait(broken)


def test_cancel_one_without_waits():
    assert Timer(1).cancel_one() == 0


def test_async_wait_needs_running_loop():
    with pytest.raises(RuntimeError):
        Timer(1).async_wait()


@pytest.mark.asyncio
async def test_cancelled_wait_reports_ecanceled():
    timer = Timer(10)
    seen = []
    wait = timer.async_wait(seen.append)
    assert timer.cancel() == 1
    assert await wait == errno.ECANCELED
    assert seen == [errno.ECANCELED]


def test_run_demo_order_and_codes():
    lines = run_demo(0.02)
    assert len(lines) == 4
    assert lines[0].startswith("Timer 1 stoped with ec = 0,")
    assert lines[1].startswith(f"Timer 3.1 stoped with ec = {errno.ECANCELED},")
    assert lines[2].startswith("Timer 2 stoped with ec = 0,")
    assert lines[3].startswith("Timer 3.2 stoped with ec = 0,")


def test_run_demo_rejects_negative_scale():
    with pytest.raises(ValueError):
        run_demo(-1)


def test_main_prints_report(capsys):
    assert main(["--scale", "0.01"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert len(out) == 4
    assert out[1].startswith("Timer 3.1")