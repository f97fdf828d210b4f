"""Citation selection: dedupe, domain filter, priority scoring and truncation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from screener.config import settings
from screener.models.schemas import Citation
from screener.tools import web_utils

MAX_SOURCES = 3
DEFAULT_SCORE = 50


@dataclass(frozen=True, slots=True)
class ScoredCitation:
    citation: Citation
    score: int


class SourceRanker:
    """Reduces an accumulated citation list to the few most trustworthy sources."""

    # Simplified-Chinese portals and aggregators that must never be cited.
    # Entries starting with "." are matched as host suffixes, the rest as URL substrings.
    BLOCKED_DOMAINS = (
        ".cn",
        "sina.com",
        "sohu.com",
        "163.com",
        "tencent.com",
        "xueqiu.com",
        "eastmoney.com",
        "weibo.com",
        "zhihu.com",
        "baidu.com",
        "toutiao.com",
        "hexun.com",
        "jrj.com.cn",
        "stockstar.com",
        "ifeng.com",
        "ifa.ai",
    )

    # Highest priority first; the first tier with a matching substring wins.
    PRIORITY_TIERS: tuple[tuple[int, tuple[str, ...]], ...] = (
        (100, ("finance.yahoo.com", "google.com/finance")),
        (90, ("goodinfo.tw", "cnyes.com", "moneydj.com", "anue.com")),
        (85, ("mops.twse.com.tw", ".gov.tw")),
        (
            80,
            (
                "udn.com",
                "chinatimes.com",
                "ltn.com.tw",
                "wealth.com.tw",
                "businesstoday.com.tw",
                "ctee.com.tw",
            ),
        ),
    )

    def __init__(self, max_sources: int = MAX_SOURCES):
        self.max_sources = max(int(max_sources), 0)

    def select(self, citations: Iterable[Citation] | None) -> list[Citation]:
        """Return at most ``max_sources`` citations, best first."""
        if not citations:
            return []

        unique = self._dedupe(citations)
        allowed = [c for c in unique if not self.is_blocked(c)]
        scored = [ScoredCitation(citation=c, score=self.score(c)) for c in allowed]
        # sorted() is stable, so equal scores keep arrival order
        scored = sorted(scored, key=lambda item: item.score, reverse=True)
        return [item.citation for item in scored[: self.max_sources]]

    def merge(self, current: Iterable[Citation], batch: Iterable[Citation]) -> list[Citation]:
        """Fold a new grounding batch into an already ranked list."""
        return self.select([*current, *batch])

    @staticmethod
    def _dedupe(citations: Iterable[Citation]) -> list[Citation]:
        seen: set[str] = set()
        unique: list[Citation] = []
        for citation in citations:
            if not citation.uri:
                continue
            key = web_utils.normalize_url(citation.uri)
            if key in seen:
                continue
            seen.add(key)
            unique.append(citation)
        return unique

    def is_blocked(self, citation: Citation) -> bool:
        if not citation.uri:
            return True
        lowered = citation.uri.lower()
        host = web_utils.extract_domain(citation.uri)
        for domain in self.BLOCKED_DOMAINS:
            if domain.startswith("."):
                if host.endswith(domain):
                    return True
            elif domain in lowered:
                return True
        return False

    def score(self, citation: Citation) -> int:
        if not citation.uri:
            return 0
        lowered = citation.uri.lower()
        for score, markers in self.PRIORITY_TIERS:
            if any(marker in lowered for marker in markers):
                return score
        return DEFAULT_SCORE


_default_ranker = SourceRanker(settings.max_sources)


def select_top_sources(citations: Iterable[Citation] | None) -> list[Citation]:
    return _default_ranker.select(citations)


def merge_sources(current: Iterable[Citation], batch: Iterable[Citation]) -> list[Citation]:
    return _default_ranker.merge(current, batch)
