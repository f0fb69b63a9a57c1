from __future__ import annotations

import contextlib
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, Optional

logger = logging.getLogger(__name__)


class ChannelClosed(RuntimeError):
    pass


class Channel:
    """Unbuffered handoff between one producer and one or more receivers.

    send() returns only after a receiver has taken the item, so the producer
    never runs ahead of the consumers.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: Any = None
        self._full = False
        self._closed = False
        self._sent = 0
        self._taken = 0

    def send(self, item: Any) -> None:
        with self._cond:
            while self._full and not self._closed:
                self._cond.wait()
            if self._closed:
                raise ChannelClosed("send on closed channel")

            self._item = item
            self._full = True
            self._sent += 1
            ticket = self._sent
            self._cond.notify_all()

            while self._taken < ticket and not self._closed:
                self._cond.wait()

    def recv(self) -> Any:
        """Take the next item; raises ChannelClosed once closed and drained."""

        with self._cond:
            while not self._full and not self._closed:
                self._cond.wait()
            if not self._full:
                raise ChannelClosed("channel closed")

            item = self._item
            self._item = None
            self._full = False
            self._taken += 1
            self._cond.notify_all()
            return item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.recv()
            except ChannelClosed:
                return


class KeyedLocks:
    """At most one holder per key; distinct keys never block each other."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = defaultdict(threading.Lock)

    @contextlib.contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks[key]
        with lock:
            yield


@dataclass(frozen=True)
class DispatchStats:
    handled: int
    errors: int


def dispatch(
    produce: Callable[[Callable[[Any], None]], Any],
    handle: Callable[[Any], None],
    *,
    workers: int = 1,
) -> DispatchStats:
    """Run produce(send) on this thread and handle() on `workers` consumers.

    With workers=1 items are handled strictly one at a time, in order.
    Items sharing a key are never handled concurrently. A failing handle()
    is logged and counted; an exception from produce() is re-raised once the
    consumers have drained.
    """

    if workers < 1:
        raise ValueError("workers must be >= 1")

    channel = Channel()
    locks = KeyedLocks()
    counts_lock = threading.Lock()
    counts = {"handled": 0, "errors": 0}

    def consume() -> None:
        for item in channel:
            key: Optional[Hashable] = getattr(item, "key", None)
            try:
                with locks.hold(key if key is not None else id(item)):
                    handle(item)
            except Exception:
                logger.exception("Handler failed for %r", item)
                with counts_lock:
                    counts["errors"] += 1
            with counts_lock:
                counts["handled"] += 1

    threads = [
        threading.Thread(target=consume, name=f"preparer-worker-{i}", daemon=True)
        for i in range(workers)
    ]
    for t in threads:
        t.start()

    try:
        produce(channel.send)
    finally:
        channel.close()
        for t in threads:
            t.join()

    return DispatchStats(handled=counts["handled"], errors=counts["errors"])
