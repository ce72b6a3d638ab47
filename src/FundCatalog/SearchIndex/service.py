# === NAVMAP v1 ===
# {
#   "module": "FundCatalog.SearchIndex.service",
#   "purpose": "Query engine: candidate generation, filtering, scoring and pagination",
#   "sections": [
#     {"id": "requestvalidationerror", "name": "RequestValidationError", "anchor": "class-requestvalidationerror", "kind": "class"},
#     {"id": "cataloganalytics", "name": "CatalogAnalytics", "anchor": "class-cataloganalytics", "kind": "class"},
#     {"id": "fundsearchservice", "name": "FundSearchService", "anchor": "class-fundsearchservice", "kind": "class"},
#     {"id": "paginationcheckresult", "name": "PaginationCheckResult", "anchor": "class-paginationcheckresult", "kind": "class"},
#     {"id": "verify-pagination", "name": "verify_pagination", "anchor": "function-verify-pagination", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Query engine answering text and filter searches against a :class:`FundIndex`.

A search runs in five steps:

1. Candidate generation. Query text is normalized like indexed names and
   split into tokens. Each token contributes the codes of every indexed token
   that equals it, is a prefix of it, starts with it, or (for tokens of at
   least ``fuzzy_min_length`` characters) lies within the configured
   Levenshtein distance. Tokens are combined with OR semantics. Without text
   every indexed code is a candidate.
2. Filter intersection for fund house, category, plan and risk tier. Values
   within a dimension are OR-ed, dimensions are AND-ed, and an empty list
   leaves the dimension unconstrained. Filter labels match regardless of
   case and surrounding whitespace.
3. Scoring with the configured weights when text is present, sorted by score
   descending and scheme code ascending.
4. Without text, ordering by scheme name then scheme code.
5. Offset/limit pagination.

The engine only reads from the index.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from .config import QueryConfig
from .index import FundIndex, fold_label
from .observability import Observability
from .tokenization import normalize_text, tokenize
from .types import FundEntity, SearchFacets, SearchFilters, SearchResult

__all__ = (
    "CatalogAnalytics",
    "FundSearchService",
    "PaginationCheckResult",
    "RequestValidationError",
    "build_stats_snapshot",
    "verify_pagination",
)


class RequestValidationError(ValueError):
    """Raised when the caller submits an invalid search request.

    Examples:
        >>> raise RequestValidationError("limit must be positive")
        Traceback (most recent call last):
        ...
        FundCatalog.SearchIndex.service.RequestValidationError: limit must be positive
    """


@dataclass(slots=True)
class CatalogAnalytics:
    """Aggregate view of the indexed catalog.

    Attributes:
        total_funds: Number of indexed entities.
        categories: Entity count per top-level category.
        sub_categories: Entity count per sub-category.
        fund_houses: Entity count per fund house.
        top_fund_houses: Ten largest fund houses, largest first.
    """

    total_funds: int
    categories: Mapping[str, int]
    sub_categories: Mapping[str, int]
    fund_houses: Mapping[str, int]
    top_fund_houses: Sequence[Tuple[str, int]] = field(default_factory=tuple)


class FundSearchService:
    """Search, suggestion and analytics entry point over a fund index.

    Args:
        index: Populated index to query.
        config: Paging, fuzzy matching and scoring settings.
        observability: Metrics and logging facade.

    Examples:
        >>> from FundCatalog.SearchIndex.classifier import classify
        >>> from FundCatalog.SearchIndex.types import RawFundRecord
        >>> index = FundIndex()
        >>> _ = index.index(classify(RawFundRecord(2, "HDFC Mid Cap Fund Regular Growth")))
        >>> FundSearchService(index).search(SearchFilters(text="midcap")).scheme_codes
        [2]
    """

    def __init__(
        self,
        index: FundIndex,
        *,
        config: Optional[QueryConfig] = None,
        observability: Optional[Observability] = None,
    ) -> None:
        self._index = index
        self._config = config or QueryConfig()
        self._observability = observability or Observability()

    @property
    def index(self) -> FundIndex:
        return self._index

    @property
    def config(self) -> QueryConfig:
        return self._config

    def search(self, filters: SearchFilters) -> SearchResult:
        """Execute a search and return one ranked page.

        Args:
            filters: Free text, filter sets and paging for the query.

        Returns:
            SearchResult holding the requested page, the total match count and
            the time spent. An empty match set yields an empty page.

        Raises:
            RequestValidationError: If paging parameters are out of range.
        """
        limit, offset = self._validate(filters)
        started = time.perf_counter()
        text = (filters.text or "").strip()
        mode = "text" if text else "browse"
        with self._observability.trace("search", mode=mode):
            query_tokens = tokenize(text, min_length=1) if text else []
            if text:
                candidates = self._candidates(query_tokens)
            else:
                candidates = self._index.all_codes()
            entities = self._apply_filters(candidates, filters)
            if text:
                scored = [(self._score(entity, query_tokens), entity) for entity in entities]
                scored.sort(key=lambda item: (-item[0], item[1].scheme_code))
            else:
                scored = [(0.0, entity) for entity in entities]
                scored.sort(key=lambda item: (item[1].scheme_name, item[1].scheme_code))
            page = scored[offset : offset + limit]
            facets = _facets(entities)
        elapsed_ms = (time.perf_counter() - started) * 1000
        total = len(scored)
        self._observability.metrics.increment("search_requests", mode=mode)
        self._observability.metrics.observe("search_latency_ms", elapsed_ms, mode=mode)
        self._observability.logger.debug(
            "fund-search",
            extra={
                "event": {
                    "mode": mode,
                    "tokens": len(query_tokens),
                    "total": total,
                    "offset": offset,
                    "limit": limit,
                    "duration_ms": round(elapsed_ms, 3),
                }
            },
        )
        return SearchResult(
            funds=[entity for _, entity in page],
            scores=[score for score, _ in page],
            total=total,
            has_more=offset + limit < total,
            offset=offset,
            limit=limit,
            search_time_ms=elapsed_ms,
            facets=facets,
        )

    def suggest(self, prefix: str, *, limit: int = 10) -> List[str]:
        """Return autocomplete suggestions for a partially typed query.

        Fund houses whose name contains the text come first, followed by
        indexed tokens starting with it.
        """
        if limit <= 0:
            raise RequestValidationError("limit must be positive")
        raw = " ".join(prefix.lower().split())
        needle = " ".join(normalize_text(prefix).split())
        if not raw:
            return []
        suggestions: List[str] = [
            house for house in self._index.fund_houses() if raw in house.lower()
        ]
        if needle and " " not in needle and len(suggestions) < limit:
            suggestions.extend(self._index.tokens_with_prefix(needle, limit=limit))
        return list(dict.fromkeys(suggestions))[:limit]

    def analytics(self) -> CatalogAnalytics:
        """Summarize the indexed catalog by category and fund house."""

        fund_houses = self._index.fund_house_counts()
        top = sorted(fund_houses.items(), key=lambda item: (-item[1], item[0]))[:10]
        return CatalogAnalytics(
            total_funds=self._index.count(),
            categories=self._index.category_counts(),
            sub_categories=self._index.sub_category_counts(),
            fund_houses=fund_houses,
            top_fund_houses=tuple(top),
        )

    # --- Internal helpers ---

    def _validate(self, filters: SearchFilters) -> Tuple[int, int]:
        limit = self._config.default_limit if filters.limit is None else filters.limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise RequestValidationError("limit must be a positive integer")
        if limit > self._config.max_limit:
            raise RequestValidationError(f"limit must be <= {self._config.max_limit}")
        offset = filters.offset
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise RequestValidationError("offset must be a non-negative integer")
        for tier in filters.risk_tiers:
            if isinstance(tier, bool) or not isinstance(tier, int):
                raise RequestValidationError(f"risk tier must be an integer, received {tier!r}")
        return limit, offset

    def _candidates(self, query_tokens: Sequence[str]) -> Set[int]:
        codes: Set[int] = set()
        for token in query_tokens:
            for matched in self._matching_tokens(token):
                codes.update(self._index.codes_for_token(matched))
        return codes

    def _matching_tokens(self, token: str) -> Set[str]:
        index = self._index
        matched: Set[str] = set()
        # Indexed tokens equal to, or a prefix of, the query token.
        for size in range(1, len(token) + 1):
            head = token[:size]
            if index.has_token(head):
                matched.add(head)
        matched.update(index.tokens_with_prefix(token))
        distance = self._config.fuzzy_max_distance
        if distance > 0 and len(token) >= self._config.fuzzy_min_length:
            for length in range(len(token) - distance, len(token) + distance + 1):
                choices = index.tokens_of_length(length)
                if not choices:
                    continue
                for choice, _, _ in process.extract_iter(
                    token, choices, scorer=Levenshtein.distance, score_cutoff=distance
                ):
                    matched.add(choice)
        return matched

    def _apply_filters(self, candidates: Set[int], filters: SearchFilters) -> List[FundEntity]:
        index = self._index
        if filters.fund_houses:
            candidates = candidates & _union(index.codes_for_fund_house(h) for h in filters.fund_houses)
        if filters.categories:
            candidates = candidates & _union(index.codes_for_category(c) for c in filters.categories)
        entities = index.bulk_get(candidates)
        if filters.plans:
            plans = {fold_label(plan) for plan in filters.plans}
            entities = [entity for entity in entities if fold_label(entity.plan) in plans]
        if filters.risk_tiers:
            tiers = set(filters.risk_tiers)
            entities = [entity for entity in entities if entity.risk_tier in tiers]
        return entities

    def _score(self, entity: FundEntity, query_tokens: Sequence[str]) -> float:
        weights = self._config.weights
        name = entity.scheme_name.lower()
        fund_house = entity.fund_house.lower()
        category = entity.category.lower()
        sub_category = entity.sub_category.lower()
        score = 0.0
        for token in query_tokens:
            if name == token:
                score += weights["exact_name"]
            elif name.startswith(token):
                score += weights["name_prefix"]
            elif token in name:
                score += weights["name_substring"]
            if token in fund_house:
                score += weights["fund_house"]
            if token in category:
                score += weights["category"]
            if token in sub_category:
                score += weights["sub_category"]
        return score


def _union(buckets: Iterable[Iterable[int]]) -> Set[int]:
    merged: Set[int] = set()
    for bucket in buckets:
        merged.update(bucket)
    return merged


def _facets(entities: Sequence[FundEntity]) -> SearchFacets:
    return SearchFacets(
        categories=dict(Counter(entity.category for entity in entities)),
        sub_categories=dict(Counter(entity.sub_category for entity in entities)),
        fund_houses=dict(Counter(entity.fund_house for entity in entities)),
        risk_tiers=dict(sorted(Counter(entity.risk_tier for entity in entities).items())),
    )


# --- Public Functions ---


def build_stats_snapshot(index: FundIndex, observability: Observability) -> Dict[str, object]:
    """Capture index sizes and the current metrics for status reporting."""

    return {
        "index": {"funds": index.count(), "tokens": index.token_count()},
        "metrics": observability.metrics_snapshot(),
    }


@dataclass(slots=True)
class PaginationCheckResult:
    """Outcome of walking every page of a query.

    Attributes:
        pages: Number of pages requested.
        total: Total reported by the first page.
        duplicates: Scheme codes returned on more than one page.
        missing: Codes of the unpaginated ranking absent from the pages.
        ordered: Whether concatenated pages reproduce the unpaginated ranking.
    """

    pages: int
    total: int
    duplicates: List[int]
    missing: List[int]
    ordered: bool

    @property
    def consistent(self) -> bool:
        return self.ordered and not self.duplicates and not self.missing


def verify_pagination(
    service: FundSearchService,
    filters: SearchFilters,
    *,
    page_size: int = 10,
) -> PaginationCheckResult:
    """Page through a query and compare the pages with a single full result.

    Args:
        service: Search service to query.
        filters: Query to check; its offset and limit are ignored.
        page_size: Limit used for every page.

    Returns:
        PaginationCheckResult describing duplicates, omissions and ordering.
    """

    def with_paging(offset: int, limit: int) -> SearchFilters:
        return SearchFilters(
            text=filters.text,
            fund_houses=filters.fund_houses,
            categories=filters.categories,
            plans=filters.plans,
            risk_tiers=filters.risk_tiers,
            offset=offset,
            limit=limit,
        )

    first = service.search(with_paging(0, page_size))
    total = first.total
    collected: List[int] = list(first.scheme_codes)
    pages = 1
    offset = page_size
    has_more = first.has_more
    while has_more:
        page = service.search(with_paging(offset, page_size))
        collected.extend(page.scheme_codes)
        has_more = page.has_more
        offset += page_size
        pages += 1

    expected: List[int] = []
    cap = service.config.max_limit
    start = 0
    while start < total:
        chunk = service.search(with_paging(start, min(cap, max(1, total - start))))
        expected.extend(chunk.scheme_codes)
        start += cap

    counts = Counter(collected)
    duplicates = sorted(code for code, seen in counts.items() if seen > 1)
    missing = sorted(set(expected) - set(collected))
    return PaginationCheckResult(
        pages=pages,
        total=total,
        duplicates=duplicates,
        missing=missing,
        ordered=collected == expected,
    )
