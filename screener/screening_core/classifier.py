from __future__ import annotations

import json
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from screener.agents.source_ranker import select_top_sources
from screener.models.schemas import (
    STOCK_KIND,
    SUMMARY_KIND,
    Category,
    Citation,
    StockRecord,
    StreamedRecord,
    SummaryRecord,
)

_CATEGORIES = {category.value for category in Category}


def discriminate(data: Any) -> str | None:
    """Decide which record variant a parsed object is, if any."""
    if not isinstance(data, dict):
        return None
    category = data.get("category")
    if "ticker" in data and isinstance(category, str) and category in _CATEGORIES:
        return STOCK_KIND
    if SUMMARY_KIND in (data.get("type"), data.get("kind")) and "message" in data:
        return SUMMARY_KIND
    return None


class RecordClassifier:
    """Turns candidate spans into typed records; malformed spans are skipped."""

    def __init__(self, rank_sources: Callable[[list[Citation]], list[Citation]] = select_top_sources):
        self._rank_sources = rank_sources
        self.skipped = 0

    def classify(self, span: str) -> StreamedRecord | None:
        try:
            data = json.loads(span)
        except json.JSONDecodeError as exc:
            self.skipped += 1
            logger.warning(f"Could not parse a streamed JSON object ({exc}): {span[:200]}")
            return None

        kind = discriminate(data)
        if kind is None:
            logger.debug(f"Ignoring streamed object of unknown shape: {span[:200]}")
            return None

        payload = {key: value for key, value in data.items() if key not in ("kind", "type")}
        try:
            if kind == STOCK_KIND:
                record = StockRecord.model_validate(payload)
                return record.model_copy(update={"citations": self._rank_sources(record.citations)})
            return SummaryRecord.model_validate(payload)
        except ValidationError as exc:
            self.skipped += 1
            logger.warning(f"Streamed {kind} object failed validation: {exc.error_count()} error(s)")
            return None
