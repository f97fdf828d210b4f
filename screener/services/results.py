"""Caller-owned screening state: per-category stocks, summaries and ranked sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from screener.agents.source_ranker import merge_sources
from screener.models.schemas import Category, Citation, StockRecord, StreamedRecord, SummaryRecord
from screener.services.streaming import stock_to_wire


@dataclass
class ScreeningResults:
    stocks: dict[Category, list[StockRecord]] = field(
        default_factory=lambda: {category: [] for category in Category}
    )
    summaries: dict[Category, str | None] = field(
        default_factory=lambda: {category: None for category in Category}
    )
    sources: list[Citation] = field(default_factory=list)

    def add_record(self, category: Category, record: StreamedRecord) -> bool:
        """Store a record from the ``category`` pipeline; False if it was a duplicate."""
        if isinstance(record, SummaryRecord):
            self.summaries[category] = record.message
            return True

        bucket = self.stocks[record.category]
        if any(existing.ticker == record.ticker for existing in bucket):
            logger.debug(f"Skipping duplicate {record.category.value} ticker {record.ticker}")
            return False
        bucket.append(record)
        return True

    def add_sources(self, batch: Iterable[Citation]) -> list[Citation]:
        # Must stay synchronous: merge against the latest list, never one captured before an await.
        self.sources = merge_sources(self.sources, batch)
        return self.sources

    def tickers(self, category: Category) -> list[str]:
        return [record.ticker for record in self.stocks[category]]

    def to_dict(self) -> dict[str, list[dict]]:
        return {
            category.value: [stock_to_wire(record) for record in records]
            for category, records in self.stocks.items()
        }
