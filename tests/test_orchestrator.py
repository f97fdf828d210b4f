from __future__ import annotations

import asyncio
import json

import pytest

from screener.agents.orchestrator import (
    PipelineError,
    PipelineState,
    ScreeningError,
    ScreeningOrchestrator,
    ScreeningPipeline,
    ScreeningRequest,
    build_screening_prompt,
)
from screener.llm_client import GenerationChunk
from screener.models.schemas import Category, Citation, StockRecord, SummaryRecord
from screener.services.results import ScreeningResults

LONG_STOCK = '{"ticker":"2330.TW","category":"longTerm","name":"TSMC","buyZone":"900-950","reasoning":"r"}'
SUMMARY = '{"type":"analysis_summary","message":"done"}'
SWING_STOCK = '{"category":"swingTrade","ticker":"2603.TW","name":"Evergreen","buyZone":"180","stopLoss":"170","takeProfit":"210","reasoning":"r"}'


def fake_factory(scripts: dict[Category, list], *, fail: dict[Category, Exception] | None = None):
    """Stream factory replaying scripted chunks, yielding control between them."""
    fail = fail or {}
    seen: list[ScreeningRequest] = []

    async def factory(request: ScreeningRequest):
        seen.append(request)
        for item in scripts.get(request.category, []):
            await asyncio.sleep(0)
            yield item if isinstance(item, GenerationChunk) else GenerationChunk(text=item)
        if request.category in fail:
            raise fail[request.category]

    factory.seen = seen
    return factory


@pytest.mark.asyncio
async def test_split_object_yields_stock_then_summary():
    cut = len(LONG_STOCK) // 2
    factory = fake_factory({Category.LONG_TERM: [LONG_STOCK[:cut], LONG_STOCK[cut:] + SUMMARY]})
    received = []

    pipeline = ScreeningPipeline(ScreeningRequest(category=Category.LONG_TERM), factory)
    outcome = await pipeline.run(lambda c, r: received.append((c, r)), lambda batch: None)

    assert [type(r) for _, r in received] == [StockRecord, SummaryRecord]
    assert received[0][1].ticker == "2330.TW"
    assert received[1][0] is Category.LONG_TERM
    assert outcome.state is PipelineState.COMPLETED
    assert outcome.records == 2


@pytest.mark.asyncio
async def test_pipeline_runs_only_once():
    pipeline = ScreeningPipeline(ScreeningRequest(category=Category.LONG_TERM), fake_factory({}))
    await pipeline.run(lambda c, r: None, lambda b: None)

    with pytest.raises(RuntimeError):
        await pipeline.run(lambda c, r: None, lambda b: None)


@pytest.mark.asyncio
async def test_both_categories_stream_concurrently_into_results():
    factory = fake_factory(
        {
            Category.LONG_TERM: [LONG_STOCK[:20], LONG_STOCK[20:], "\n" + LONG_STOCK],
            Category.SWING_TRADE: [SWING_STOCK, '{"type":"analysis_summary","message":"only one"}'],
        }
    )
    results = ScreeningResults()
    states = []

    orchestrator = ScreeningOrchestrator(factory, on_state=lambda o: states.append((o.category, o.state)))
    outcomes = await orchestrator.run(results.add_record, results.add_sources, count=3)

    assert results.tickers(Category.LONG_TERM) == ["2330.TW"]  # duplicate ticker ignored
    assert results.tickers(Category.SWING_TRADE) == ["2603.TW"]
    assert results.summaries[Category.SWING_TRADE] == "only one"
    assert results.summaries[Category.LONG_TERM] is None
    assert outcomes[Category.LONG_TERM].records == 2
    assert all(o.state is PipelineState.COMPLETED for o in outcomes.values())
    assert {r.count for r in factory.seen} == {3}
    assert (Category.LONG_TERM, PipelineState.STREAMING) in states
    assert (Category.SWING_TRADE, PipelineState.COMPLETED) in states


@pytest.mark.asyncio
async def test_citation_batches_from_both_pipelines_are_merged():
    factory = fake_factory(
        {
            Category.LONG_TERM: [
                GenerationChunk(citations=[Citation(uri="https://www.cnyes.com/a", title="cnyes")]),
                GenerationChunk(text=LONG_STOCK, citations=[Citation(uri="https://example.com/x")]),
            ],
            Category.SWING_TRADE: [
                GenerationChunk(citations=[Citation(uri="https://sina.com/y")]),
                GenerationChunk(citations=[Citation(uri="https://finance.yahoo.com/q", title="yahoo")]),
                GenerationChunk(citations=[Citation(uri="https://cnyes.com/a?ref=1")]),
            ],
        }
    )
    results = ScreeningResults()
    batches = []

    def on_citations(batch):
        batches.append(batch)
        results.add_sources(batch)

    await ScreeningOrchestrator(factory).run(results.add_record, on_citations)

    assert len(batches) == 5
    assert [c.uri for c in results.sources] == [
        "https://finance.yahoo.com/q",
        "https://www.cnyes.com/a",
        "https://example.com/x",
    ]


@pytest.mark.asyncio
async def test_failure_in_one_pipeline_does_not_stop_the_other():
    factory = fake_factory(
        {
            Category.LONG_TERM: [LONG_STOCK],
            Category.SWING_TRADE: [SWING_STOCK, SUMMARY, SUMMARY],
        },
        fail={Category.LONG_TERM: ConnectionError("stream reset")},
    )
    results = ScreeningResults()

    outcomes = await ScreeningOrchestrator(factory).run(
        results.add_record, results.add_sources, require_all=False
    )

    long_term = outcomes[Category.LONG_TERM]
    assert long_term.state is PipelineState.FAILED
    assert isinstance(long_term.error, ConnectionError)
    # Records delivered before the failure stay valid.
    assert results.tickers(Category.LONG_TERM) == ["2330.TW"]
    assert outcomes[Category.SWING_TRADE].state is PipelineState.COMPLETED
    assert results.tickers(Category.SWING_TRADE) == ["2603.TW"]


@pytest.mark.asyncio
async def test_require_all_raises_combined_error_after_both_finish():
    factory = fake_factory(
        {Category.SWING_TRADE: [SWING_STOCK]},
        fail={Category.LONG_TERM: RuntimeError("quota exceeded")},
    )
    received = []

    with pytest.raises(ScreeningError) as excinfo:
        await ScreeningOrchestrator(factory).run(lambda c, r: received.append(r), lambda b: None)

    assert set(excinfo.value.failures) == {Category.LONG_TERM}
    failure = excinfo.value.failures[Category.LONG_TERM]
    assert isinstance(failure, PipelineError)
    assert "quota exceeded" in str(excinfo.value)
    assert [r.ticker for r in received] == ["2603.TW"]


@pytest.mark.asyncio
async def test_malformed_objects_do_not_abort_the_stream():
    factory = fake_factory(
        {Category.LONG_TERM: ['{"ticker": oops}', '{"foo":"bar"}', LONG_STOCK]}
    )
    received = []

    outcome = await ScreeningPipeline(ScreeningRequest(category=Category.LONG_TERM), factory).run(
        lambda c, r: received.append(r), lambda b: None
    )

    assert [r.ticker for r in received] == ["2330.TW"]
    assert outcome.skipped == 1


@pytest.mark.asyncio
async def test_run_category_passes_exclusions_and_loosen_flag():
    factory = fake_factory({Category.SWING_TRADE: [SWING_STOCK]})
    request = ScreeningRequest(
        category=Category.SWING_TRADE,
        count=2,
        exclude_tickers=["2603.TW"],
        loosen_criteria=True,
    )
    results = ScreeningResults()
    results.add_record(Category.SWING_TRADE, StockRecord.model_validate(json.loads(SWING_STOCK)))

    outcome = await ScreeningOrchestrator(factory).run_category(request, results.add_record, results.add_sources)

    assert factory.seen == [request]
    assert outcome.records == 1
    assert results.tickers(Category.SWING_TRADE) == ["2603.TW"]


def test_build_screening_prompt_includes_category_rules():
    prompt = build_screening_prompt(
        ScreeningRequest(
            category=Category.SWING_TRADE,
            count=4,
            exclude_tickers=["2603.TW", "2609.TW"],
            loosen_criteria=True,
            criteria="custom swing criteria",
        )
    )

    assert '"category": "swingTrade"' in prompt
    assert "up to 4" in prompt
    assert "2603.TW, 2609.TW" in prompt
    assert "custom swing criteria" in prompt
    assert '"stopLoss"' in prompt
    assert "Loosen one or two" in prompt


def test_build_screening_prompt_uses_default_criteria_for_long_term():
    prompt = build_screening_prompt(ScreeningRequest(category=Category.LONG_TERM, count=5))

    assert "ROE" in prompt
    assert '"stopLoss"' not in prompt
    assert "Stocks to exclude" not in prompt


@pytest.mark.asyncio
async def test_stream_is_closed_when_the_record_sink_raises():
    closed = []

    async def factory(request: ScreeningRequest):
        try:
            yield GenerationChunk(text=SUMMARY)
            yield GenerationChunk(text=SUMMARY)
        finally:
            closed.append(True)

    def on_record(category, record):
        raise RuntimeError("sink broke")

    pipeline = ScreeningPipeline(ScreeningRequest(category=Category.LONG_TERM), factory)

    with pytest.raises(PipelineError, match="sink broke"):
        await pipeline.run(on_record, lambda b: None)

    assert closed == [True]
    assert pipeline.state is PipelineState.FAILED


@pytest.mark.asyncio
async def test_explicit_zero_count_is_passed_through():
    factory = fake_factory({})

    await ScreeningOrchestrator(factory).run(lambda c, r: None, lambda b: None, count=0)

    assert [r.count for r in factory.seen] == [0, 0]
