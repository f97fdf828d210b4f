from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    PIPELINE_STARTED = "pipeline_started"
    STOCK_RECEIVED = "stock_received"
    ANALYSIS_SUMMARY = "analysis_summary"
    SOURCES_UPDATED = "sources_updated"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"
    SCREENING_COMPLETE = "screening_complete"
    ERROR = "error"


@dataclass
class ScreeningEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n"
