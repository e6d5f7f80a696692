from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.hub.models import Customer
    from app.hub.store import CustomerStore

logger = logging.getLogger(__name__)


class ChangeFeed:
    """
    Process-local change notifications, one version counter per partition.
    Stores publish after every successful commit; subscribers block on wait().
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._versions: dict[str, int] = defaultdict(int)

    def version(self, status: str) -> int:
        with self._cond:
            return self._versions[status]

    def publish(self, statuses) -> None:
        with self._cond:
            for status in set(statuses):
                self._versions[status] += 1
            self._cond.notify_all()

    def wait(self, status: str, since: int, timeout: float | None = None) -> int:
        with self._cond:
            self._cond.wait_for(lambda: self._versions[status] != since, timeout=timeout)
            return self._versions[status]


class Subscription:
    """
    Live view of one partition.

    The first call to next_snapshot() returns the current list immediately.
    Later calls block until a commit touches the partition; on timeout the
    partition is re-read and returned only if it differs from the last
    snapshot, which picks up writes made by other processes.
    """

    def __init__(self, store: CustomerStore, status: str) -> None:
        self.store = store
        self.status = status
        self.closed = False
        self._seen: int | None = None
        self._last: list[Customer] | None = None

    def next_snapshot(self, timeout: float | None = None) -> list[Customer] | None:
        if self.closed:
            return None
        feed = self.store.feed
        if self._seen is None:
            self._seen = feed.version(self.status)
            return self._take()

        version = feed.wait(self.status, self._seen, timeout=timeout)
        if self.closed:
            return None
        if version != self._seen:
            self._seen = version
            return self._take()

        snapshot = self.store.list(self.status)
        if snapshot != self._last:
            self._last = snapshot
            return snapshot
        return None

    def _take(self) -> list[Customer]:
        self._last = self.store.list(self.status)
        return self._last

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            logger.debug("Subscription to %s closed", self.status)
