"""
Undo/redo history for the rule canvas.

Snapshots are Graph values, which are immutable, so the history holds plain
references: handing one back from undo()/redo() cannot let the caller reach
into history state.

Two ways of grouping edits into a single entry:

- Transactions. The editor brackets a logical operation (a drag gesture, a
  multi-node delete) with begin_transaction()/commit_transaction(); every
  push() in between only replaces the pending snapshot and the commit records
  exactly one entry.
- Debounce. A push() outside any transaction that arrives within
  ``debounce_ms`` of the last accepted push is dropped. This collapses bursts
  of change events that nobody bracketed.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from .GraphPrimitives import Graph

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50
DEFAULT_DEBOUNCE_MS = 100


class HistoryManager:
    def __init__(self,
                 max_history: int = DEFAULT_MAX_HISTORY,
                 debounce_ms: float = DEFAULT_DEBOUNCE_MS,
                 clock: Callable[[], float] = time.monotonic):
        if max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {max_history}")
        self.max_history = max_history
        self.debounce_ms = debounce_ms
        self._clock = clock

        self._entries: List[Graph] = []
        self._cursor = -1
        self._last_push: Optional[float] = None

        self._tx_depth = 0
        self._tx_pending: Optional[Graph] = None

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def length(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    @property
    def current(self) -> Optional[Graph]:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor]

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    # ── Recording ─────────────────────────────────────────────────────────

    def push(self, graph: Graph) -> bool:
        """
        Offer a snapshot. Returns True when it was recorded (or, inside a
        transaction, staged), False when the debounce dropped it.
        """
        if self._tx_depth:
            self._tx_pending = graph
            return True

        now = self._clock()
        if self._last_push is not None and (now - self._last_push) * 1000.0 < self.debounce_ms:
            logger.debug("History: push dropped by %sms debounce", self.debounce_ms)
            return False
        self._last_push = now
        self._record(graph)
        return True

    def _record(self, graph: Graph) -> None:
        # a new edit after an undo abandons the redo branch
        del self._entries[self._cursor + 1:]
        self._entries.append(graph)
        if len(self._entries) > self.max_history:
            del self._entries[0:len(self._entries) - self.max_history]
        self._cursor = len(self._entries) - 1
        logger.debug("History: recorded snapshot %d/%d", self._cursor + 1, len(self._entries))

    # ── Transactions ──────────────────────────────────────────────────────

    def begin_transaction(self) -> None:
        self._tx_depth += 1

    def commit_transaction(self) -> bool:
        """Close the innermost transaction; the outermost commit records the staged graph."""
        if not self._tx_depth:
            raise RuntimeError("commit_transaction() called without an open transaction")
        self._tx_depth -= 1
        if self._tx_depth:
            return False

        pending, self._tx_pending = self._tx_pending, None
        if pending is None or pending == self.current:
            return False
        self._record(pending)
        self._last_push = self._clock()
        return True

    def rollback_transaction(self) -> None:
        if not self._tx_depth:
            raise RuntimeError("rollback_transaction() called without an open transaction")
        self._tx_depth -= 1
        if not self._tx_depth:
            self._tx_pending = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group every push() in the block into at most one history entry."""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    # ── Navigation ────────────────────────────────────────────────────────

    def undo(self) -> Optional[Graph]:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def redo(self) -> Optional[Graph]:
        if not self.can_redo:
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1
        self._last_push = None
        self._tx_depth = 0
        self._tx_pending = None
