import threading
import time

import pytest

from gtunnel.blockvalue import BlockValue


def test_get_blocks_until_set():
    bv = BlockValue()
    start = time.monotonic()

    def setter():
        time.sleep(0.5)
        bv.set(1)

    thread = threading.Thread(target=setter)
    thread.start()
    value = bv.get()
    assert time.monotonic() - start >= 0.45
    assert value == 1

    start = time.monotonic()
    value = bv.get()
    assert time.monotonic() - start < 0.1
    assert value == 1
    thread.join()


def test_get_times_out():
    bv = BlockValue()
    with pytest.raises(TimeoutError):
        bv.get(timeout=0.05)


def test_set_again_replaces_value():
    bv = BlockValue()
    bv.set("first")
    bv.set("second")
    assert bv.get(timeout=0) == "second"