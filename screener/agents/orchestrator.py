from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncGenerator, Callable, Iterable

from loguru import logger

from screener.config import settings
from screener.llm_client import GenerationChunk, client as llm_client
from screener.models.schemas import Category, Citation, StreamedRecord
from screener.screening_core.classifier import RecordClassifier
from screener.screening_core.reassembler import StreamReassembler
from screener.services.logger import log_pipeline_event
from screener.services.prompt_store import get_prompt, render_category_prompt, render_prompt

RecordCallback = Callable[[Category, StreamedRecord], None]
CitationCallback = Callable[[list[Citation]], None]


class PipelineState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ScreeningRequest:
    category: Category
    count: int = field(default_factory=lambda: settings.screening_count)
    exclude_tickers: list[str] = field(default_factory=list)
    loosen_criteria: bool = False
    criteria: str | None = None  # falls back to the catalog default for the category


@dataclass
class PipelineOutcome:
    category: Category
    state: PipelineState = PipelineState.IDLE
    records: int = 0
    skipped: int = 0
    error: BaseException | None = None


StreamFactory = Callable[[ScreeningRequest], AsyncGenerator[GenerationChunk, None]]
StateCallback = Callable[[PipelineOutcome], None]


class PipelineError(RuntimeError):
    def __init__(self, category: Category, cause: BaseException):
        super().__init__(f"Error analyzing stocks for {category.value}: {cause}")
        self.category = category
        self.cause = cause


class ScreeningError(RuntimeError):
    def __init__(self, failures: dict[Category, BaseException]):
        details = "; ".join(f"{category.value}: {exc}" for category, exc in failures.items())
        super().__init__(f"Screening failed ({details})")
        self.failures = failures


def build_screening_prompt(request: ScreeningRequest) -> str:
    category = request.category
    count = request.count
    criteria = request.criteria or get_prompt(f"screening.criteria.{category.value}")
    exclude = (
        render_prompt("screening.exclude", tickers=", ".join(request.exclude_tickers))
        if request.exclude_tickers
        else ""
    )
    loosen = render_prompt("screening.loosen", count=count) if request.loosen_criteria else ""
    return render_prompt(
        "screening.task",
        strategy_name=render_category_prompt("screening.strategy_name", category),
        category=category.value,
        goal=render_category_prompt("screening.goal", category, count=count),
        timeliness=render_category_prompt("screening.timeliness", category),
        exit_fields=render_category_prompt("screening.exit_fields", category),
        criteria=criteria,
        exclude=exclude,
        loosen=loosen,
        count=count,
    )


async def stream_screening(request: ScreeningRequest) -> AsyncGenerator[GenerationChunk, None]:
    """Default stream factory: one grounded OpenRouter stream per request."""
    stream = llm_client().stream(
        system=get_prompt("screening.system_prompt"),
        prompt=build_screening_prompt(request),
        temperature=settings.screening_temperature,
        caller=f"screening:{request.category.value}",
    )
    async with stream as active:
        async for chunk in active.chunks:
            yield chunk


class ScreeningPipeline:
    """Reassembler + classifier over a single category's stream.

    State moves idle -> streaming -> completed | failed and a pipeline runs once.
    Records reach ``on_record`` in the order their closing brace arrived.
    """

    def __init__(
        self,
        request: ScreeningRequest,
        stream_factory: StreamFactory,
        *,
        string_aware: bool | None = None,
        on_state: StateCallback | None = None,
    ):
        if string_aware is None:
            string_aware = settings.stream_string_aware_braces
        self.request = request
        self.outcome = PipelineOutcome(category=request.category)
        self._stream_factory = stream_factory
        self._reassembler = StreamReassembler(string_aware=string_aware)
        self._classifier = RecordClassifier()
        self._on_state = on_state

    @property
    def state(self) -> PipelineState:
        return self.outcome.state

    def _transition(self, state: PipelineState) -> None:
        self.outcome.state = state
        if self._on_state is not None:
            self._on_state(self.outcome)

    def _log_outcome(self, error: str | None = None) -> None:
        log_pipeline_event(
            category=self.outcome.category.value,
            state=self.outcome.state.value,
            records=self.outcome.records,
            skipped=self.outcome.skipped,
            error=error,
        )

    async def run(self, on_record: RecordCallback, on_citations: CitationCallback) -> PipelineOutcome:
        if self.outcome.state is not PipelineState.IDLE:
            raise RuntimeError(f"{self.request.category.value} pipeline has already run")

        category = self.request.category
        self._transition(PipelineState.STREAMING)
        try:
            # Closed on every exit so a raising sink still ends the upstream stream.
            async with aclosing(self._stream_factory(self.request)) as chunks:
                async for chunk in chunks:
                    if chunk.citations:
                        on_citations(list(chunk.citations))
                    for span in self._reassembler.feed(chunk.text):
                        record = self._classifier.classify(span)
                        if record is None:
                            continue
                        self.outcome.records += 1
                        on_record(category, record)
        except Exception as exc:
            self.outcome.error = exc
            self.outcome.skipped = self._classifier.skipped
            self._transition(PipelineState.FAILED)
            self._log_outcome(error=str(exc))
            raise PipelineError(category, exc) from exc

        if self._reassembler.in_object:
            logger.warning(
                f"{category.value} stream ended inside an unterminated object "
                f"({len(self._reassembler.pending)} chars dropped)"
            )
        self.outcome.skipped = self._classifier.skipped
        self._transition(PipelineState.COMPLETED)
        self._log_outcome()
        return self.outcome


class ScreeningOrchestrator:
    """Runs one screening pipeline per category concurrently.

    The orchestrator keeps no results of its own: records and citation batches
    go straight to the caller's callbacks. A failing pipeline never cancels the
    others.
    """

    def __init__(
        self,
        stream_factory: StreamFactory | None = None,
        *,
        categories: Iterable[Category] = tuple(Category),
        on_state: StateCallback | None = None,
    ):
        self._stream_factory = stream_factory or stream_screening
        self.categories = tuple(categories)
        self._on_state = on_state

    def _pipeline(self, request: ScreeningRequest) -> ScreeningPipeline:
        return ScreeningPipeline(request, self._stream_factory, on_state=self._on_state)

    async def run(
        self,
        on_record: RecordCallback,
        on_citations: CitationCallback,
        *,
        count: int | None = None,
        criteria: dict[Category, str] | None = None,
        require_all: bool = True,
    ) -> dict[Category, PipelineOutcome]:
        """Screen every category; raise ``ScreeningError`` if any failed and ``require_all``."""
        criteria = criteria or {}
        pipelines = [
            self._pipeline(
                ScreeningRequest(
                    category=category,
                    count=count if count is not None else settings.screening_count,
                    criteria=criteria.get(category),
                )
            )
            for category in self.categories
        ]
        logger.info(f"Starting screening for {', '.join(c.value for c in self.categories)}")

        results = await asyncio.gather(
            *(pipeline.run(on_record, on_citations) for pipeline in pipelines),
            return_exceptions=True,
        )

        outcomes = {pipeline.request.category: pipeline.outcome for pipeline in pipelines}
        failures = {
            pipeline.request.category: result
            for pipeline, result in zip(pipelines, results)
            if isinstance(result, BaseException)
        }
        if failures and require_all:
            raise ScreeningError(failures)
        return outcomes

    async def run_category(
        self,
        request: ScreeningRequest,
        on_record: RecordCallback,
        on_citations: CitationCallback,
    ) -> PipelineOutcome:
        """Single-category run, used for "load more" and loosened-criteria follow-ups."""
        return await self._pipeline(request).run(on_record, on_citations)
