"""Store error types and the per-chunk upsert report."""

from __future__ import annotations

from dataclasses import dataclass, field


class StoreReadError(RuntimeError):
    """A paged read failed; ``page_index`` is the page to resume from."""

    def __init__(self, message: str, page_index: int, rows_read: int = 0):
        super().__init__(f"{message} (page {page_index}, {rows_read} rows read)")
        self.page_index = page_index
        self.rows_read = rows_read


class PageLimitExceeded(StoreReadError):
    """A paged read returned full pages past the configured page cap."""


@dataclass
class ChunkFailure:
    """One upsert chunk that the store rejected."""

    chunk_index: int
    row_count: int
    error: str


@dataclass
class UpsertReport:
    """Outcome of a chunked upsert."""

    table: str
    rows_written: int = 0
    failed_chunks: list[ChunkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_chunks

    @property
    def rows_failed(self) -> int:
        return sum(f.row_count for f in self.failed_chunks)
