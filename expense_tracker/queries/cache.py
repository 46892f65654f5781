"""
Record Cache

Per-view, in-memory snapshot of expense records. The only way to change it
is to replace the whole snapshot, which is a single attribute assignment:
readers see either the old tuple or the new one, never a mix.
"""

from typing import Callable, Iterable, Iterator

from expense_tracker.models.expense import ExpenseRecord


CacheListener = Callable[[tuple[ExpenseRecord, ...]], None]


class RecordCache:
    """Ordered, immutable snapshot of one view's records."""

    def __init__(self):
        self._records: tuple[ExpenseRecord, ...] = ()
        self._version = 0
        self._listeners: list[CacheListener] = []

    @property
    def snapshot(self) -> tuple[ExpenseRecord, ...]:
        return self._records

    @property
    def version(self) -> int:
        """Incremented on every replacement, including clears."""
        return self._version

    def replace(self, records: Iterable[ExpenseRecord]) -> None:
        """Swap in a full new snapshot and notify listeners."""
        self._records = tuple(records)
        self._version += 1
        for listener in list(self._listeners):
            listener(self._records)

    def clear(self) -> None:
        self.replace(())

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        """
        Call `listener` with every new snapshot.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ExpenseRecord]:
        return iter(self._records)
