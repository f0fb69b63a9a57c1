import threading
import time
from dataclasses import dataclass

import pytest

from node_preparer.dispatch import Channel, ChannelClosed, KeyedLocks, dispatch


@dataclass(frozen=True)
class Item:
    key: tuple
    n: int


def test_send_blocks_until_received():
    ch = Channel()
    sent = threading.Event()

    def producer():
        ch.send("a")
        sent.set()

    t = threading.Thread(target=producer)
    t.start()
    assert not sent.wait(0.1)

    assert ch.recv() == "a"
    assert sent.wait(2)
    t.join()


def test_closed_channel():
    ch = Channel()
    ch.close()
    with pytest.raises(ChannelClosed):
        ch.send("a")
    with pytest.raises(ChannelClosed):
        ch.recv()
    assert list(ch) == []


def test_single_worker_handles_in_order():
    seen = []

    def produce(send):
        for i in range(10):
            send(Item(key=("app", str(i)), n=i))

    stats = dispatch(produce, lambda item: seen.append(item.n), workers=1)

    assert seen == list(range(10))
    assert stats.handled == 10
    assert stats.errors == 0


def test_handler_errors_are_counted_not_fatal():
    seen = []

    def handle(item):
        if item.n == 1:
            raise RuntimeError("boom")
        seen.append(item.n)

    def produce(send):
        for i in range(3):
            send(Item(key=("app", str(i)), n=i))

    stats = dispatch(produce, handle)

    assert seen == [0, 2]
    assert stats.errors == 1
    assert stats.handled == 3


def test_producer_errors_propagate_after_drain():
    seen = []

    def produce(send):
        send(Item(key=("a", "1"), n=1))
        raise ValueError("list failed")

    with pytest.raises(ValueError):
        dispatch(produce, lambda item: seen.append(item.n), workers=2)
    assert seen == [1]


def test_same_key_is_never_handled_concurrently():
    active = {}
    overlap = []
    lock = threading.Lock()

    def handle(item):
        with lock:
            active[item.key] = active.get(item.key, 0) + 1
            if active[item.key] > 1:
                overlap.append(item.key)
        time.sleep(0.01)
        with lock:
            active[item.key] -= 1

    def produce(send):
        for i in range(12):
            send(Item(key=("app", str(i % 2)), n=i))

    stats = dispatch(produce, handle, workers=4)

    assert overlap == []
    assert stats.handled == 12


def test_keyed_locks_do_not_block_distinct_keys():
    locks = KeyedLocks()
    with locks.hold("a"):
        acquired = threading.Event()

        def other():
            with locks.hold("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(2)
        t.join()


def test_workers_must_be_positive():
    with pytest.raises(ValueError):
        dispatch(lambda send: None, lambda item: None, workers=0)
