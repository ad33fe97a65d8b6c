"""Client-side read cache with optimistic, rollback-capable mutations.

Partitions are keyed by ``(kind, organization_id, discriminator)``. Every write
goes through a pure transform ``old value -> new value``; transforms must return
new containers rather than mutate the ones they receive, so a snapshot taken at
mutation start is exactly the value restored on rollback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

from agenda.core.exceptions import ValidationError
from agenda.shared.enums import PartitionKind
from agenda.shared.ulid import generate_ulid

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]
Loader = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class PartitionKey:
    kind: PartitionKind
    organization_id: str
    discriminator: tuple[Hashable, ...] = ()


@dataclass
class _Partition:
    value: Any = None
    loaded: bool = False
    stale: bool = False
    generation: int = 0
    loader: Loader | None = None
    refetch: asyncio.Task[None] | None = None
    refetch_generation: int = -1
    pending: list["Transaction"] = field(default_factory=list)


class Transaction:
    """One optimistic mutation: snapshot, apply, then commit or roll back.

    Used as an async context manager, an exception inside the block rolls the
    partitions back and re-raises; a clean exit commits and refetches.
    """

    def __init__(self, store: "CacheStore", keys: Iterable[PartitionKey], invalidate: Iterable[PartitionKey] = ()):
        self.id = generate_ulid()
        self._store = store
        self.snapshots: dict[PartitionKey, Any] = {}
        self.transforms: dict[PartitionKey, list[Transform]] = {}
        self._invalidate = list(dict.fromkeys(invalidate))
        self._done = False
        for key in dict.fromkeys(keys):
            store._enlist(self, key)

    @property
    def keys(self) -> list[PartitionKey]:
        return list(self.snapshots)

    def apply(self, transform: Transform, keys: Iterable[PartitionKey] | None = None) -> None:
        targets = self.keys if keys is None else [key for key in keys if key in self.snapshots]
        for key in targets:
            self.transforms.setdefault(key, []).append(transform)
            self._store._write(key, transform)

    async def commit(self) -> None:
        if self._done:
            return
        self._done = True
        self._store._release(self)
        await self._store.invalidate([*self.keys, *self._invalidate])

    def rollback(self) -> None:
        if self._done:
            return
        self._done = True
        self._store._restore(self)

    async def __aenter__(self) -> "Transaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            logger.warning("Rolling back mutation %s after %s", self.id, exc_type.__name__)
            self.rollback()
            return
        await self.commit()


class CacheStore:
    """Session-scoped cache. ``init`` on session start, ``clear`` on sign-out."""

    def __init__(self) -> None:
        self.organization_id: str | None = None
        self._partitions: dict[PartitionKey, _Partition] = {}
        self._pollers: list[asyncio.Task[None]] = []

    def init(self, organization_id: str) -> None:
        self.clear()
        self.organization_id = organization_id
        logger.debug("Cache initialized for organization %s", organization_id)

    def clear(self) -> None:
        for task in self._pollers:
            task.cancel()
        self._pollers.clear()
        for partition in self._partitions.values():
            if partition.refetch is not None and not partition.refetch.done():
                partition.refetch.cancel()
        self._partitions.clear()
        self.organization_id = None

    @property
    def active(self) -> bool:
        return self.organization_id is not None

    def key(self, kind: PartitionKind, *discriminator: Hashable) -> PartitionKey:
        if self.organization_id is None:
            raise ValidationError("No organization selected for this session")
        return PartitionKey(kind, self.organization_id, tuple(discriminator))

    # Reads

    def peek(self, key: PartitionKey) -> bool:
        partition = self._partitions.get(key)
        return partition is not None and partition.loaded

    def get(self, key: PartitionKey) -> Any:
        partition = self._partitions.get(key)
        if partition is None or not partition.loaded:
            return None
        return partition.value

    def keys(self, kind: PartitionKind) -> list[PartitionKey]:
        return [
            key
            for key, partition in self._partitions.items()
            if key.kind == kind and key.organization_id == self.organization_id and partition.loaded
        ]

    def is_stale(self, key: PartitionKey) -> bool:
        partition = self._partitions.get(key)
        return partition is None or not partition.loaded or partition.stale

    def has_pending(self, key: PartitionKey) -> bool:
        partition = self._partitions.get(key)
        return partition is not None and bool(partition.pending)

    async def load(self, key: PartitionKey, loader: Loader, *, force: bool = False) -> Any:
        """Return the cached value, fetching it on miss, staleness or ``force``."""
        partition = self._partitions.setdefault(key, _Partition())
        partition.loader = loader
        if partition.loaded and not partition.stale and not force:
            logger.debug("Cache hit %s", key)
            return partition.value
        logger.debug("Cache miss %s", key)
        await asyncio.shield(self._refetch(key, partition))
        return partition.value

    # Writes

    def set(self, key: PartitionKey, value: Any) -> None:
        partition = self._partitions.setdefault(key, _Partition())
        partition.value = value
        partition.loaded = True
        partition.stale = False

    def update(self, key: PartitionKey, transform: Transform) -> bool:
        """Apply ``transform`` to a loaded partition outside any transaction."""
        if not self.peek(key):
            return False
        self._write(key, transform)
        return True

    def begin(self, keys: Iterable[PartitionKey], invalidate: Iterable[PartitionKey] = ()) -> Transaction:
        return Transaction(self, keys, invalidate)

    async def invalidate(self, keys: Iterable[PartitionKey]) -> None:
        """Mark partitions stale and refetch those that have a loader and no pending mutation."""
        waits = []
        for key in dict.fromkeys(keys):
            partition = self._partitions.get(key)
            if partition is None:
                continue
            partition.stale = True
            partition.generation += 1
            if partition.loader is None or partition.pending:
                continue
            waits.append(self._refetch(key, partition))
        results = await asyncio.gather(*waits, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Refetch after invalidation failed: %s", result)

    async def refresh(self, kind: PartitionKind) -> None:
        """Background refresh of every loaded partition of ``kind``."""
        waits = []
        for key in self.keys(kind):
            partition = self._partitions[key]
            if partition.loader is None:
                continue
            if partition.pending:
                logger.debug("Skipping refresh of %s; mutation in flight", key)
                continue
            waits.append(self._refetch(key, partition))
        results = await asyncio.gather(*waits, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Background refresh failed: %s", result)

    def start_polling(self, kind: PartitionKind, interval_seconds: float) -> asyncio.Task[None]:
        task = asyncio.create_task(self._poll(kind, interval_seconds))
        self._pollers.append(task)
        return task

    async def _poll(self, kind: PartitionKind, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.refresh(kind)

    # Internals

    def _refetch(self, key: PartitionKey, partition: _Partition) -> asyncio.Task[None]:
        running = partition.refetch
        if running is not None and not running.done() and partition.refetch_generation == partition.generation:
            return running
        partition.refetch_generation = partition.generation
        partition.refetch = asyncio.ensure_future(self._fetch(key, partition, partition.generation))
        return partition.refetch

    async def _fetch(self, key: PartitionKey, partition: _Partition, generation: int) -> None:
        assert partition.loader is not None
        value = await partition.loader()
        if partition.loaded and (partition.generation != generation or partition.pending):
            logger.debug("Discarding superseded refetch of %s", key)
            return
        partition.value = value
        partition.loaded = True
        partition.stale = False

    def _enlist(self, txn: Transaction, key: PartitionKey) -> None:
        partition = self._partitions.get(key)
        if partition is None or not partition.loaded:
            return
        txn.snapshots[key] = partition.value
        partition.pending.append(txn)
        # Any refetch already on the wire predates this mutation.
        partition.generation += 1

    def _write(self, key: PartitionKey, transform: Transform) -> None:
        partition = self._partitions[key]
        partition.value = transform(partition.value)

    def _release(self, txn: Transaction) -> None:
        for key in txn.snapshots:
            partition = self._partitions.get(key)
            if partition is not None and txn in partition.pending:
                partition.pending.remove(txn)

    def _restore(self, txn: Transaction) -> None:
        for key, snapshot in txn.snapshots.items():
            partition = self._partitions.get(key)
            if partition is None or txn not in partition.pending:
                continue
            position = partition.pending.index(txn)
            later = partition.pending[position + 1 :]
            value = snapshot
            for other in later:
                other.snapshots[key] = value
                for transform in other.transforms.get(key, []):
                    value = transform(value)
            partition.value = value
            partition.pending.remove(txn)
