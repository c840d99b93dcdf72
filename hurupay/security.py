"""
Hurupay Security Layer

Replay protection for transfer authorizations.

A request id can trigger at most one successful execution over the whole
lifetime of a deployment. The set of consumed ids is append-only: ids are
never pruned, even after their deadline has passed, because an id is only
unusable after expiry as long as the clock keeps moving forward.

Security Model:
    - Check-then-set is atomic under one lock
    - Consumption is committed only when the surrounding operation succeeds
    - The persistent journal is written before the id is reported consumed

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol, Set, Union

from hurupay.hardening import RequestAlreadyProcessed


# =============================================================================
# PROCESSED SET STORES
# =============================================================================

class ProcessedSetStore(Protocol):
    """Backing store for consumed request ids."""

    def __contains__(self, request_id: bytes) -> bool:
        ...

    def add(self, request_id: bytes) -> None:
        ...

    def discard(self, request_id: bytes) -> None:
        ...

    def __len__(self) -> int:
        ...


class InMemoryProcessedSet:
    """Process-local consumed id set."""

    def __init__(self):
        self._ids: Set[bytes] = set()

    def __contains__(self, request_id: bytes) -> bool:
        return request_id in self._ids

    def add(self, request_id: bytes) -> None:
        self._ids.add(request_id)

    def discard(self, request_id: bytes) -> None:
        self._ids.discard(request_id)

    def __len__(self) -> int:
        return len(self._ids)


class FileProcessedSet:
    """
    Consumed id set persisted as an append-only journal.

    Each line is ``+<hex id>`` (consumed) or ``-<hex id>`` (consumption rolled
    back by a failed operation). The journal is replayed on open, so replay
    protection survives restarts.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._ids: Set[bytes] = set()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._path.exists():
            self._load()

    def _load(self) -> None:
        with open(self._path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                op, hex_id = line[0], line[1:]
                try:
                    request_id = bytes.fromhex(hex_id)
                except ValueError as e:
                    raise ValueError(f"{self._path}:{lineno}: corrupt journal entry") from e
                if op == "+":
                    self._ids.add(request_id)
                elif op == "-":
                    self._ids.discard(request_id)
                else:
                    raise ValueError(f"{self._path}:{lineno}: unknown journal op {op!r}")

    def _append(self, op: str, request_id: bytes) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(f"{op}{request_id.hex()}\n")
            f.flush()
            os.fsync(f.fileno())

    @property
    def path(self) -> Path:
        return self._path

    def __contains__(self, request_id: bytes) -> bool:
        return request_id in self._ids

    def add(self, request_id: bytes) -> None:
        self._append("+", request_id)
        self._ids.add(request_id)

    def discard(self, request_id: bytes) -> None:
        if request_id in self._ids:
            self._append("-", request_id)
            self._ids.discard(request_id)

    def __len__(self) -> int:
        return len(self._ids)


# =============================================================================
# REPLAY GUARD
# =============================================================================

class ReplayGuard:
    """
    Tracks consumed request ids and rejects reuse.

    The read of "is this id consumed" and the write that consumes it happen
    under the same lock, so two concurrent callers can never both observe an
    id as fresh.
    """

    def __init__(self, store: Optional[ProcessedSetStore] = None):
        self._store = store if store is not None else InMemoryProcessedSet()
        self._lock = threading.Lock()

    def is_consumed(self, request_id: bytes) -> bool:
        with self._lock:
            return request_id in self._store

    def require_fresh(self, request_id: bytes) -> None:
        """Fail with RequestAlreadyProcessed without consuming anything."""
        if self.is_consumed(request_id):
            raise RequestAlreadyProcessed(request_id=request_id.hex())

    def check_and_consume(self, request_id: bytes) -> None:
        """
        Atomically mark ``request_id`` consumed.

        Raises:
            RequestAlreadyProcessed: the id was consumed before
        """
        with self._lock:
            if request_id in self._store:
                raise RequestAlreadyProcessed(request_id=request_id.hex())
            self._store.add(request_id)

    @contextmanager
    def consume(self, request_id: bytes) -> Iterator[None]:
        """
        Consume ``request_id`` for the duration of a block.

        The id reads as consumed from entry onwards, including to nested
        calls made from inside the block. If the block raises, the mark is
        rolled back so the id can be submitted again.
        """
        self.check_and_consume(request_id)
        try:
            yield
        except BaseException:
            with self._lock:
                self._store.discard(request_id)
            raise

    def size(self) -> int:
        """Number of consumed ids."""
        with self._lock:
            return len(self._store)
