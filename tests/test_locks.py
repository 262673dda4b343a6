import threading

import pytest

from app.core.errors import ConcurrencyConflict
from app.core.locks import KeyedLockRegistry


def test_entries_dropped_after_release():
    registry = KeyedLockRegistry("test")
    with registry.hold(["b", "a", "a"]) as keys:
        assert keys == ["a", "b"]
        assert len(registry) == 2
        with registry.hold(["a"]):
            assert len(registry) == 2
        assert len(registry) == 2
    assert len(registry) == 0


def test_timed_out_waiter_leaves_no_entry():
    registry = KeyedLockRegistry("test")
    held, done = threading.Event(), threading.Event()

    def holder():
        with registry.hold(["fee-1"]):
            held.set()
            done.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(ConcurrencyConflict):
            with registry.hold(["fee-0", "fee-1"], timeout=0.05):
                pass
        assert len(registry) == 1
    finally:
        done.set()
        thread.join(5)
    assert len(registry) == 0
