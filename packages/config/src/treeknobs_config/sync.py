"""Synchronizers guarding node models and configurations.

All views created from one backing node model share that model's
synchronizer. Queries run in read mode, mutations (including registering
tracked nodes) in write mode.

Example:
    ```python
    sync = ReadWriteSynchronizer()
    with sync.read_locked():
        value = read_something()
    with sync.write_locked():
        change_something()
    ```
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Protocol, runtime_checkable

from treeknobs_common import ConcurrencyError


@runtime_checkable
class Synchronizer(Protocol):
    """Interface for objects controlling concurrent access."""

    def begin_read(self) -> None: ...

    def end_read(self) -> None: ...

    def begin_write(self) -> None: ...

    def end_write(self) -> None: ...

    def read_locked(self): ...

    def write_locked(self): ...


class _LockedContexts:
    """Context manager helpers on top of begin/end methods."""

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.begin_read()
        try:
            yield
        finally:
            self.end_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.begin_write()
        try:
            yield
        finally:
            self.end_write()


class NoOpSynchronizer(_LockedContexts):
    """Synchronizer that does nothing, for single-threaded use."""

    def begin_read(self) -> None:
        pass

    def end_read(self) -> None:
        pass

    def begin_write(self) -> None:
        pass

    def end_write(self) -> None:
        pass


class ReadWriteSynchronizer(_LockedContexts):
    """Reentrant readers/writer lock.

    Any number of threads may read at the same time; a writer has exclusive
    access. The writing thread may acquire read and write access again
    while it holds the write lock. Waiting writers block new readers, but a
    thread that already reads may read again. Upgrading a read lock to a
    write lock is not possible and raises ``ConcurrencyError``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._writer: int | None = None
        self._write_count = 0
        self._readers: Dict[int, int] = {}
        self._waiting_writers = 0

    def begin_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me or me in self._readers:
                self._readers[me] = self._readers.get(me, 0) + 1
                return
            while self._writer is not None or self._waiting_writers:
                self._cond.wait()
            self._readers[me] = 1

    def end_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            count = self._readers.get(me)
            if not count:
                raise ConcurrencyError(
                    "end_read() called without begin_read()", context={"thread": me}
                )
            if count == 1:
                del self._readers[me]
                self._cond.notify_all()
            else:
                self._readers[me] = count - 1

    def begin_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_count += 1
                return
            if me in self._readers:
                raise ConcurrencyError(
                    "Cannot acquire write lock while holding a read lock",
                    context={"thread": me},
                )
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = me
            self._write_count = 1

    def end_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer != me:
                raise ConcurrencyError(
                    "end_write() called without begin_write()", context={"thread": me}
                )
            self._write_count -= 1
            if self._write_count == 0:
                self._writer = None
                self._cond.notify_all()


__all__ = ["NoOpSynchronizer", "ReadWriteSynchronizer", "Synchronizer"]
