"""Single-shot JSON requests: single-stock deep dive and capital allocation."""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from screener.agents.source_ranker import select_top_sources
from screener.config import settings
from screener.llm_client import OpenRouterClient, client as llm_client
from screener.models.schemas import AllocationPlan, Category, SingleStockAnalysis
from screener.services.prompt_store import get_prompt, render_prompt
from screener.services.results import ScreeningResults

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Parse a model reply that should hold exactly one JSON object.

    Markdown fences are stripped; if the reply still does not parse, the span
    from the first ``{`` to the last ``}`` is tried.
    """
    text = raw_text.strip()
    if not text:
        raise ValueError("Model returned an empty response.")
    if text.startswith("```") and text.endswith("```"):
        text = _FENCE_RE.sub("", text).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        start = text.find("{")
        end = text.rfind("}")
        if start < 0 or end <= start:
            raise ValueError(f"Response is not valid JSON: {exc}") from exc
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError as inner:
            raise ValueError(f"Response is not valid JSON: {inner}") from inner

    if not isinstance(parsed, dict):
        raise ValueError("Response JSON is not an object.")
    return parsed


async def analyze_single_stock(
    ticker: str,
    *,
    llm: OpenRouterClient | None = None,
) -> SingleStockAnalysis:
    ticker = ticker.strip()
    if not ticker:
        raise ValueError("Ticker must not be empty.")

    completion = await (llm or llm_client()).complete(
        system=get_prompt("analysis.system_prompt"),
        prompt=render_prompt("analysis.task", ticker=ticker),
        temperature=settings.analysis_temperature,
        caller="single_stock",
    )
    try:
        analysis = SingleStockAnalysis.model_validate(parse_json_response(completion.text))
    except ValueError as exc:  # includes pydantic ValidationError
        logger.error(f"Single stock analysis for {ticker} could not be parsed: {exc}")
        raise ValueError(f"Error analyzing {ticker}: {exc}") from exc

    # Grounding annotations stand in when the model listed no sources itself.
    sources = select_top_sources(analysis.citations or completion.citations)
    return analysis.model_copy(update={"citations": sources})


async def generate_allocation_plan(
    total_amount: float,
    ratio: float,
    results: ScreeningResults,
    *,
    llm: OpenRouterClient | None = None,
) -> AllocationPlan:
    """Split ``total_amount`` (``ratio`` percent long-term) across screened stocks."""
    if total_amount <= 0:
        raise ValueError("Total amount must be positive.")
    if not 0 <= ratio <= 100:
        raise ValueError("Ratio must be between 0 and 100.")
    if not any(results.stocks.values()):
        raise ValueError("No screened stocks to allocate.")

    long_term_amount = total_amount * (ratio / 100)

    def candidates(category: Category) -> str:
        return ", ".join(f"{s.ticker} {s.name}".strip() for s in results.stocks[category])

    completion = await (llm or llm_client()).complete(
        system=get_prompt("allocation.system_prompt"),
        prompt=render_prompt(
            "allocation.task",
            total_amount=f"{total_amount:,.0f}",
            ratio=f"{ratio:g}",
            swing_ratio=f"{100 - ratio:g}",
            long_term_amount=f"{long_term_amount:.0f}",
            swing_trade_amount=f"{total_amount - long_term_amount:.0f}",
            long_term_candidates=candidates(Category.LONG_TERM),
            swing_trade_candidates=candidates(Category.SWING_TRADE),
        ),
        temperature=settings.allocation_temperature,
        grounded=False,
        caller="allocation",
    )
    try:
        return AllocationPlan.model_validate(parse_json_response(completion.text))
    except ValueError as exc:
        logger.error(f"Allocation plan could not be parsed: {exc}")
        raise ValueError(f"Allocation plan response could not be parsed: {exc}") from exc
