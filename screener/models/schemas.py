from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

STOCK_KIND = "stock"
SUMMARY_KIND = "analysis_summary"


class Category(str, Enum):
    LONG_TERM = "longTerm"
    SWING_TRADE = "swingTrade"


class Citation(BaseModel):
    """A single web source. ``uri`` may be missing on malformed grounding data."""

    model_config = ConfigDict(frozen=True)

    uri: str | None = None
    title: str = ""

    @classmethod
    def from_wire(cls, item: Any) -> Citation | None:
        """Accept ``{"web": {...}}`` grounding chunks, flat dicts and url_citation payloads."""
        if isinstance(item, Citation):
            return item
        if not isinstance(item, dict):
            return None
        web = item.get("web")
        if isinstance(web, dict):
            item = web
        uri = item.get("uri") or item.get("url")
        title = item.get("title") or ""
        return cls(uri=str(uri) if uri else None, title=str(title))

    def to_wire(self) -> dict[str, Any]:
        return {"web": {"uri": self.uri, "title": self.title}}


def citations_from_wire(value: Any) -> list[Citation]:
    if not isinstance(value, list):
        return []
    citations = [Citation.from_wire(item) for item in value]
    return [c for c in citations if c is not None]


class StockRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    kind: Literal["stock"] = STOCK_KIND
    category: Category
    ticker: str
    name: str = ""
    buy_zone: str = Field(default="", alias="buyZone")
    stop_loss: str | None = Field(default=None, alias="stopLoss")
    take_profit: str | None = Field(default=None, alias="takeProfit")
    reasoning: str = ""
    citations: list[Citation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sources", "citations"),
        serialization_alias="sources",
    )

    @field_validator("ticker", mode="before")
    @classmethod
    def _strip_ticker(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("name", "buy_zone", "reasoning", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("citations", mode="before")
    @classmethod
    def _parse_citations(cls, value: Any) -> list[Citation]:
        return citations_from_wire(value)


class SummaryRecord(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    kind: Literal["analysis_summary"] = SUMMARY_KIND
    message: str


StreamedRecord = Annotated[Union[StockRecord, SummaryRecord], Field(discriminator="kind")]


# --- Non-streaming analysis responses ---


class MetricAnalysis(BaseModel):
    metric: str
    status: str = ""
    evaluation: str = ""


class SingleStockAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    name: str = ""
    ticker: str
    analysis: list[MetricAnalysis] = Field(default_factory=list)
    strategy_suggestion: str = Field(default="", alias="strategySuggestion")
    long_term_suitability: str = Field(default="", alias="longTermSuitability")
    citations: list[Citation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sources", "citations"),
        serialization_alias="sources",
    )

    @field_validator("citations", mode="before")
    @classmethod
    def _parse_citations(cls, value: Any) -> list[Citation]:
        return citations_from_wire(value)


class AllocatedStock(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: str = ""
    ticker: str
    amount: float
    reason: str = ""


class CategoryAllocation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_amount: float = Field(alias="totalAmount")
    stocks: list[AllocatedStock] = Field(default_factory=list)


class AllocationPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str = ""
    long_term_allocation: CategoryAllocation = Field(alias="longTermAllocation")
    swing_trade_allocation: CategoryAllocation = Field(alias="swingTradeAllocation")
