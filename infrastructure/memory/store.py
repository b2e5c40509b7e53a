"""In-memory arena store: one dict per table keyed by id.

Single-process only. Backs the in-memory Unit of Work used in local dev and
tests. Id sequences are shared and never rolled back, like database sequences.
"""
from __future__ import annotations

import copy
import itertools
from dataclasses import dataclass, field
from typing import Any, Iterator


TABLES = ("orders", "vendors", "payments", "refunds", "settlements")
SEQUENCES = TABLES + ("vendor_orders",)


@dataclass
class ArenaTables:
    orders: dict[int, Any] = field(default_factory=dict)
    vendors: dict[int, Any] = field(default_factory=dict)
    payments: dict[int, Any] = field(default_factory=dict)
    refunds: dict[int, Any] = field(default_factory=dict)
    settlements: dict[int, Any] = field(default_factory=dict)

    def copy(self) -> "ArenaTables":
        return copy.deepcopy(self)


class ArenaStore:
    def __init__(self) -> None:
        self.tables = ArenaTables()
        self._sequences: dict[str, Iterator[int]] = {name: itertools.count(1) for name in SEQUENCES}
        self.commits = 0

    def next_id(self, table: str) -> int:
        return next(self._sequences[table])

    def begin(self) -> ArenaTables:
        """Working copy for one unit of work."""
        return self.tables.copy()

    def commit(self, working: ArenaTables) -> None:
        self.tables = working.copy()
        self.commits += 1
