import threading

from guesswho.backend.timing import ThreadingScheduler, utc_now


def test_utc_now_is_timezone_aware() -> None:
    assert utc_now().utcoffset() is not None


def test_threading_scheduler_runs_callback() -> None:
    fired = threading.Event()

    ThreadingScheduler().call_later(0.01, fired.set)

    assert fired.wait(timeout=2.0) is True


def test_threading_scheduler_cancel_prevents_callback() -> None:
    fired = threading.Event()

    handle = ThreadingScheduler().call_later(0.2, fired.set)
    handle.cancel()

    assert fired.wait(timeout=0.4) is False
