from __future__ import annotations

from typing import Any

from screener.models.events import EventType, ScreeningEvent
from screener.models.schemas import Category, Citation, StockRecord, SummaryRecord


def pipeline_started(category: Category, **kwargs: Any) -> ScreeningEvent:
    return ScreeningEvent(
        event=EventType.PIPELINE_STARTED, data={"category": category.value, **kwargs}
    )


def stock_to_wire(record: StockRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json", by_alias=True, exclude={"kind", "citations"})
    data["sources"] = [citation.to_wire() for citation in record.citations]
    return data


def stock_received(record: StockRecord) -> ScreeningEvent:
    return ScreeningEvent(event=EventType.STOCK_RECEIVED, data=stock_to_wire(record))


def analysis_summary(category: Category, record: SummaryRecord) -> ScreeningEvent:
    return ScreeningEvent(
        event=EventType.ANALYSIS_SUMMARY,
        data={"category": category.value, "message": record.message},
    )


def sources_updated(sources: list[Citation]) -> ScreeningEvent:
    return ScreeningEvent(
        event=EventType.SOURCES_UPDATED,
        data={"sources": [source.to_wire() for source in sources]},
    )


def pipeline_completed(category: Category, records: int) -> ScreeningEvent:
    return ScreeningEvent(
        event=EventType.PIPELINE_COMPLETED,
        data={"category": category.value, "records": records},
    )


def pipeline_failed(category: Category, message: str) -> ScreeningEvent:
    return ScreeningEvent(
        event=EventType.PIPELINE_FAILED,
        data={"category": category.value, "message": message},
    )


def screening_complete(
    stocks: dict[str, list[dict]],
    sources: list[Citation],
    runtime_ms: int | None = None,
) -> ScreeningEvent:
    data: dict[str, Any] = {
        "stocks": stocks,
        "sources": [source.to_wire() for source in sources],
    }
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return ScreeningEvent(event=EventType.SCREENING_COMPLETE, data=data)


def error(message: str, category: Category | None = None) -> ScreeningEvent:
    data: dict[str, Any] = {"message": message}
    if category:
        data["category"] = category.value
    return ScreeningEvent(event=EventType.ERROR, data=data)
