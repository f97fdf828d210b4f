"""Taiwan stock screener

CLI for streaming long-term and swing-trade screens and single-stock analysis.
"""

import argparse
import asyncio
import sys
import time

import screener.services.logger  # noqa: F401  configures loguru sinks
from screener.agents.analyst import analyze_single_stock, generate_allocation_plan
from screener.agents.orchestrator import (
    PipelineError,
    PipelineOutcome,
    PipelineState,
    ScreeningError,
    ScreeningOrchestrator,
    ScreeningRequest,
)
from screener.config import settings
from screener.models.events import ScreeningEvent
from screener.models.schemas import Category, Citation, StockRecord, StreamedRecord
from screener.services import streaming
from screener.services.results import ScreeningResults


def print_event(event: ScreeningEvent, sse: bool) -> None:
    if sse:
        print(event.format(), end="", flush=True)
        return

    data = event.data
    event_type = event.event.value

    if event_type == "pipeline_started":
        print(f"\n[~] Screening {data.get('category')}...")

    elif event_type == "stock_received":
        print(f"  [+] {data.get('category')}: {data.get('ticker')} {data.get('name')}")
        print(f"      Buy zone: {data.get('buyZone')}")
        if data.get("stopLoss") or data.get("takeProfit"):
            print(f"      Stop loss: {data.get('stopLoss')} | Take profit: {data.get('takeProfit')}")
        for source in data.get("sources", []):
            print(f"      - {source['web'].get('title') or source['web'].get('uri')}")

    elif event_type == "analysis_summary":
        print(f"  [i] {data.get('category')}: {data.get('message')}")

    elif event_type == "pipeline_completed":
        print(f"  [+] {data.get('category')} complete: {data.get('records')} records")

    elif event_type == "pipeline_failed":
        print(f"  [!] {data.get('category')} failed: {data.get('message')}")

    elif event_type == "screening_complete":
        print(f"\n[*] Screening complete in {data.get('runtime_ms')}ms")
        print(f"   Sources: {len(data.get('sources', []))}")
        for source in data.get("sources", []):
            print(f"   - {source['web'].get('title')} <{source['web'].get('uri')}>")

    elif event_type == "error":
        print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


async def run_screen(args: argparse.Namespace) -> int:
    results = ScreeningResults()

    def on_record(category: Category, record: StreamedRecord) -> None:
        if not results.add_record(category, record):
            return
        if isinstance(record, StockRecord):
            print_event(streaming.stock_received(record), args.sse)
        else:
            print_event(streaming.analysis_summary(category, record), args.sse)

    def on_citations(batch: list[Citation]) -> None:
        results.add_sources(batch)
        if args.sse:
            print_event(streaming.sources_updated(results.sources), args.sse)

    def on_state(outcome: PipelineOutcome) -> None:
        if outcome.state is PipelineState.STREAMING:
            print_event(streaming.pipeline_started(outcome.category), args.sse)
        elif outcome.state is PipelineState.COMPLETED:
            print_event(streaming.pipeline_completed(outcome.category, outcome.records), args.sse)
        elif outcome.state is PipelineState.FAILED:
            print_event(streaming.pipeline_failed(outcome.category, str(outcome.error)), args.sse)

    categories = tuple(Category) if args.category == "all" else (Category(args.category),)
    orchestrator = ScreeningOrchestrator(categories=categories, on_state=on_state)
    started = time.monotonic()

    try:
        if len(categories) == 1 and (args.exclude or args.loosen):
            request = ScreeningRequest(
                category=categories[0],
                count=args.count if args.count is not None else settings.screening_count,
                exclude_tickers=list(args.exclude or []),
                loosen_criteria=args.loosen,
            )
            await orchestrator.run_category(request, on_record, on_citations)
        else:
            await orchestrator.run(on_record, on_citations, count=args.count)
    except (PipelineError, ScreeningError) as exc:
        print_event(streaming.error(str(exc)), args.sse)
        return 1

    print_event(
        streaming.screening_complete(
            results.to_dict(),
            results.sources,
            runtime_ms=int((time.monotonic() - started) * 1000),
        ),
        args.sse,
    )

    if args.budget:
        try:
            plan = await generate_allocation_plan(args.budget, args.ratio, results)
        except ValueError as exc:
            print_event(streaming.error(str(exc)), args.sse)
            return 1
        print(f"\n[*] Allocation plan: {plan.summary}")
        for label, allocation in (
            ("Long-term", plan.long_term_allocation),
            ("Swing trade", plan.swing_trade_allocation),
        ):
            print(f"  {label} ({allocation.total_amount:,.0f} TWD):")
            for stock in allocation.stocks:
                print(f"    - {stock.ticker} {stock.name}: {stock.amount:,.0f} TWD  {stock.reason}")
    return 0


async def run_analyze(args: argparse.Namespace) -> int:
    try:
        result = await analyze_single_stock(args.ticker)
    except Exception as exc:
        print(f"\n[!] Error: {exc}")
        return 1

    print(f"\n[*] {result.ticker} {result.name}")
    for metric in result.analysis:
        print(f"  {metric.metric}: {metric.status} ({metric.evaluation})")
    print(f"\n  Strategy: {result.strategy_suggestion}")
    print(f"  Long-term suitability: {result.long_term_suitability}")
    for source in result.citations:
        print(f"  - {source.title} <{source.uri}>")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Taiwan stock screener")
    subparsers = parser.add_subparsers(dest="command", required=True)

    screen = subparsers.add_parser("screen", help="Stream long-term and swing-trade picks")
    screen.add_argument(
        "--category",
        "-c",
        choices=["all", *(c.value for c in Category)],
        default="all",
    )
    screen.add_argument("--count", "-n", type=int, default=None, help="Stocks per category")
    screen.add_argument("--exclude", nargs="*", help="Tickers already shown (single category)")
    screen.add_argument("--loosen", action="store_true", help="Relax the most restrictive criteria")
    screen.add_argument("--budget", type=float, help="Total TWD to allocate after screening")
    screen.add_argument("--ratio", type=float, default=70.0, help="Long-term share in percent")
    screen.add_argument("--sse", action="store_true", help="Print raw server-sent events")

    analyze = subparsers.add_parser("analyze", help="Deep-dive analysis of one stock")
    analyze.add_argument("ticker")

    args = parser.parse_args()

    if args.command == "analyze":
        sys.exit(asyncio.run(run_analyze(args)))
    sys.exit(asyncio.run(run_screen(args)))


if __name__ == "__main__":
    main()
