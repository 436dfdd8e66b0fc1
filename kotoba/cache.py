"""
Incremental search cache.

A SearchOperation executes the tiers of one query and buffers their rows.
The first caller starts it; from then on a single owner task appends rows
and resolves page requests. Other callers only post requests to the
operation's inbox (or read rows already buffered), so the buffer has one
writer.

Page requests are served as soon as the buffer covers them, even while
later tiers are still running. After every tier the owner drains the
inbox and yields to the event loop before it loads more rows.

Operations are shared through a bounded SearchCache keyed by query id.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional, Sequence, Set, Tuple

from kotoba.config import MAX_SEARCH_CACHE_ENTRIES, MIN_SEARCH_ENTRY_TTL
from kotoba.errors import KotobaError, ValidationError
from kotoba.predicate import Tier

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class OperationState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SearchRow:
    """An index hit: entry id, its global position and the tier that found it."""
    sequence: str
    position: Optional[int]
    tier: Tier


@dataclass(slots=True)
class PageRequest:
    offset: int
    limit: int
    future: asyncio.Future


def validate_page(offset, limit) -> None:
    """
    Raises:
        ValidationError: If offset is not an int >= 0 or limit not an int > 0
    """
    for name, value in (("offset", offset), ("limit", limit)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer, got {value!r}")
    if offset < 0:
        raise ValidationError(f"offset must be >= 0, got {offset}")
    if limit <= 0:
        raise ValidationError(f"limit must be > 0, got {limit}")


# Rows produced by one tier
TierRows = Tuple[Tier, Sequence[Tuple[str, Optional[int]]]]


class SearchOperation:
    """
    One search execution and its row buffer.

    State moves pending -> running -> completed | failed. Once failed, the
    error is replayed to every request the buffer cannot serve.
    """

    def __init__(self, id: str, clock: Clock = time.monotonic):
        self.id = id
        self.state = OperationState.PENDING
        self.rows: List[SearchRow] = []
        self.error: Optional[BaseException] = None
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        self._clock = clock
        self.last_used = clock()
        self._row_set: Set[str] = set()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._waiting: List[PageRequest] = []
        self._task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"SearchOperation({self.id!r}, {self.state.value}, rows={len(self.rows)})"

    # ------------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self.state is not OperationState.PENDING

    @property
    def completed(self) -> bool:
        return self.state in (OperationState.COMPLETED, OperationState.FAILED)

    @property
    def loading(self) -> bool:
        return not self.completed

    @property
    def total(self) -> int:
        """Rows buffered so far (final once completed)."""
        return len(self.rows)

    @property
    def elapsed(self) -> float:
        """Running time in seconds (partial while running)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else self._clock()
        return end - self.start_time

    @property
    def pending(self) -> int:
        """Page requests not resolved yet."""
        return self._inbox.qsize() + len(self._waiting)

    def touch(self) -> None:
        self.last_used = self._clock()

    # ------------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------------

    def _covers(self, offset: int, limit: int) -> bool:
        return offset + limit <= len(self.rows)

    def _slice(self, offset: int, limit: int) -> List[SearchRow]:
        return self.rows[offset:offset + limit]

    def page(self, offset: int, limit: int) -> asyncio.Future:
        """
        Request rows [offset, offset + limit).

        Arguments are validated before anything is scheduled. The returned
        future resolves immediately when the buffer already covers the range
        (or the operation is completed) and otherwise once enough rows arrive.
        Past the end of a completed result the page is short or empty.

        Raises:
            ValidationError: For a negative offset or non-positive limit
        """
        validate_page(offset, limit)
        self.touch()

        future = asyncio.get_running_loop().create_future()
        if self._covers(offset, limit) or self.state is OperationState.COMPLETED:
            future.set_result(self._slice(offset, limit))
        elif self.state is OperationState.FAILED:
            future.set_exception(self.error)
        else:
            self._inbox.put_nowait(PageRequest(offset, limit, future))
        return future

    # ------------------------------------------------------------------------
    # Owner
    # ------------------------------------------------------------------------

    def _push(self, tier: Tier, rows: Sequence[Tuple[str, Optional[int]]]) -> int:
        added = 0
        for sequence, position in rows:
            sequence = str(sequence)
            if sequence in self._row_set:
                continue
            self._row_set.add(sequence)
            self.rows.append(SearchRow(sequence, position, tier))
            added += 1
        return added

    def _resolve(self) -> None:
        while not self._inbox.empty():
            self._waiting.append(self._inbox.get_nowait())

        waiting = []
        for request in self._waiting:
            if request.future.done():
                continue
            if self._covers(request.offset, request.limit) or self.state is OperationState.COMPLETED:
                request.future.set_result(self._slice(request.offset, request.limit))
            elif self.state is OperationState.FAILED:
                request.future.set_exception(self.error)
            else:
                waiting.append(request)
        self._waiting = waiting

    async def run(self, tiers: AsyncIterator[TierRows]) -> None:
        """
        Consume tier results until exhausted, then settle every request.

        Only the owner task calls this, once.
        """
        if self.state is not OperationState.PENDING:
            raise RuntimeError(f"Search {self.id!r} already {self.state.value}")
        self.state = OperationState.RUNNING
        self.start_time = self._clock()
        try:
            async for tier, rows in tiers:
                added = self._push(tier, rows)
                logger.debug(f"Search {self.id!r}: {tier.name} added {added} rows ({len(self.rows)} total)")
                self._resolve()
                # let resolved pages run before loading more rows
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            self.error = KotobaError(f"Search {self.id!r} was cancelled")
            self.state = OperationState.FAILED
            raise
        except Exception as e:
            logger.debug(f"Search {self.id!r} failed: {e!r}")
            self.error = e
            self.state = OperationState.FAILED
        else:
            self.state = OperationState.COMPLETED
        finally:
            self.end_time = self._clock()
            self._resolve()
            logger.debug(f"Search {self.id!r} {self.state.value}: {len(self.rows)} rows in {self.elapsed:.3f}s")

    def start(self, tiers: Callable[[], AsyncIterator[TierRows]]) -> bool:
        """
        Start the owner task if nobody has.

        Returns:
            True if this call started the operation
        """
        if self._task is not None or self.state is not OperationState.PENDING:
            return False
        self._task = asyncio.get_running_loop().create_task(self.run(tiers()))
        return True

    async def wait(self) -> None:
        """Wait for the owner task to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)


class SearchCache:
    """
    Bounded map of query id -> SearchOperation.

    Before a new operation is inserted into a full cache, operations unused
    for at least min_ttl seconds are evicted, least recently used first.
    Operations used more recently are kept even if the cache stays over
    capacity.
    """

    def __init__(
        self,
        capacity: int = MAX_SEARCH_CACHE_ENTRIES,
        min_ttl: float = MIN_SEARCH_ENTRY_TTL,
        clock: Clock = time.monotonic,
    ):
        self.capacity = capacity
        self.min_ttl = min_ttl
        self.executions = 0
        self._clock = clock
        self._operations: "OrderedDict[str, SearchOperation]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, id: str) -> bool:
        return id in self._operations

    def ids(self) -> List[str]:
        """Ids from least to most recently used."""
        return list(self._operations)

    def get(self, id: str) -> SearchOperation:
        """Return the operation for id, creating it if needed."""
        operation = self._operations.get(id)
        if operation is not None:
            operation.touch()
            self._operations.move_to_end(id)
            logger.debug(f"Search cache hit: {id!r}")
            return operation

        self._clean_up()
        operation = SearchOperation(id, clock=self._clock)
        self._operations[id] = operation
        logger.debug(f"Search cache miss: {id!r} ({len(self._operations)} cached)")
        return operation

    def start_if(self, operation: SearchOperation, tiers: Callable[[], AsyncIterator[TierRows]]) -> bool:
        """Start operation with the given tier source unless already started."""
        started = operation.start(tiers)
        if started:
            self.executions += 1
        return started

    def _clean_up(self) -> None:
        if len(self._operations) < self.capacity:
            return
        now = self._clock()
        expired = [
            id for id, op in self._operations.items()
            if now - op.last_used >= self.min_ttl
        ]
        expired.sort(key=lambda id: self._operations[id].last_used)
        for id in expired:
            if len(self._operations) < self.capacity:
                break
            del self._operations[id]
            logger.debug(f"Evicted search {id!r}")

    def clear(self) -> None:
        self._operations.clear()
