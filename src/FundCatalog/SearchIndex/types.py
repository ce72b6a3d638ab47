"""
Core typed structures for the fund catalog search components.

This module defines the data structures exchanged between the stream ingestor,
the classifier, the inverted index, the query engine and the checkpointed
loader: raw catalog records, classified fund entities, query filters, paginated
results and loader progress snapshots. Keeping the contracts here lets the two
ingestion drivers (live and checkpointed) feed the same index and query path.

Key Features:
- Immutable records and entities so indexed state cannot drift after insertion
- Lossless dictionary round-trips for the on-disk entity store
- Camel-case payload parsing for the upstream catalog format
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

__all__ = (
    "FundEntity",
    "LoaderCheckpoint",
    "LoaderErrorEntry",
    "LoaderProgress",
    "LoaderState",
    "RawFundRecord",
    "RecordValidationError",
    "SearchFacets",
    "SearchFilters",
    "SearchResult",
    "StreamCursor",
)


class RecordValidationError(ValueError):
    """Raised when a catalog record lacks a positive scheme code or a name."""


@dataclass(frozen=True, slots=True)
class RawFundRecord:
    """Single entry of the upstream catalog before classification.

    Attributes:
        scheme_code: Unique positive integer identifying the scheme.
        scheme_name: Human readable scheme name (never empty).
        isin_growth: Optional ISIN of the growth variant, passed through.
        isin_div_reinvestment: Optional ISIN of the reinvestment variant.

    Examples:
        >>> RawFundRecord.from_mapping({"schemeCode": 1, "schemeName": "HDFC Top 100"}).scheme_code
        1
    """

    scheme_code: int
    scheme_name: str
    isin_growth: Optional[str] = None
    isin_div_reinvestment: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RawFundRecord":
        """Validate a decoded catalog object and build a record from it.

        Args:
            payload: Decoded JSON object using the catalog's camelCase keys.

        Returns:
            RawFundRecord populated from ``payload``.

        Raises:
            RecordValidationError: If the scheme code is not a positive integer
                or the scheme name is missing or blank.
        """
        if not isinstance(payload, Mapping):
            raise RecordValidationError(
                f"catalog record must be an object, received {type(payload).__name__}"
            )
        code = _coerce_scheme_code(payload.get("schemeCode"))
        name = payload.get("schemeName")
        if not isinstance(name, str) or not name.strip():
            raise RecordValidationError(f"scheme {code} has no scheme name")
        return cls(
            scheme_code=code,
            scheme_name=name.strip(),
            isin_growth=_optional_text(payload.get("isinGrowth")),
            isin_div_reinvestment=_optional_text(payload.get("isinDivReinvestment")),
        )


def _coerce_scheme_code(value: Any) -> int:
    if isinstance(value, bool):
        raise RecordValidationError("schemeCode must be a positive integer")
    if isinstance(value, int):
        code = value
    elif isinstance(value, str) and value.strip().isdigit():
        code = int(value.strip())
    else:
        raise RecordValidationError(f"schemeCode must be a positive integer, received {value!r}")
    if code <= 0:
        raise RecordValidationError(f"schemeCode must be a positive integer, received {code}")
    return code


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class FundEntity:
    """Classified, indexable view of a catalog scheme.

    Attributes:
        scheme_code: Primary identity, unique across the catalog.
        scheme_name: Original scheme name.
        fund_house: Asset management company, or ``"Others"``.
        category: Top-level SEBI category (Equity, Debt, Hybrid, Others).
        sub_category: Sub-category within ``category``.
        plan: ``"Direct"`` or ``"Regular"``.
        option: ``"Growth"``, ``"IDCW Payout"`` or ``"IDCW Reinvestment"``.
        risk_tier: Ordinal risk level, higher means riskier.
        search_tokens: Normalized tokens and prefixes used by the token index.
        isin_growth: Pass-through ISIN from the raw record.
        isin_div_reinvestment: Pass-through ISIN from the raw record.
    """

    scheme_code: int
    scheme_name: str
    fund_house: str
    category: str
    sub_category: str
    plan: str
    option: str
    risk_tier: int
    search_tokens: frozenset[str]
    isin_growth: Optional[str] = None
    isin_div_reinvestment: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entity for the on-disk entity store."""

        return {
            "scheme_code": self.scheme_code,
            "scheme_name": self.scheme_name,
            "fund_house": self.fund_house,
            "category": self.category,
            "sub_category": self.sub_category,
            "plan": self.plan,
            "option": self.option,
            "risk_tier": self.risk_tier,
            "search_tokens": sorted(self.search_tokens),
            "isin_growth": self.isin_growth,
            "isin_div_reinvestment": self.isin_div_reinvestment,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FundEntity":
        """Rebuild an entity previously produced by :meth:`to_dict`."""

        return cls(
            scheme_code=int(payload["scheme_code"]),
            scheme_name=str(payload["scheme_name"]),
            fund_house=str(payload["fund_house"]),
            category=str(payload["category"]),
            sub_category=str(payload["sub_category"]),
            plan=str(payload["plan"]),
            option=str(payload["option"]),
            risk_tier=int(payload["risk_tier"]),
            search_tokens=frozenset(payload.get("search_tokens", ())),
            isin_growth=payload.get("isin_growth"),
            isin_div_reinvestment=payload.get("isin_div_reinvestment"),
        )


@dataclass(slots=True)
class SearchFilters:
    """Query accepted by :class:`~FundCatalog.SearchIndex.service.FundSearchService`.

    Empty sequences mean "no constraint" for that dimension.

    Attributes:
        text: Optional free text; whitespace-only text counts as absent.
        fund_houses: Allowed fund houses.
        categories: Allowed categories or sub-categories.
        plans: Allowed plans.
        risk_tiers: Allowed ordinal risk tiers.
        offset: Number of ranked results to skip.
        limit: Page size; ``None`` uses the configured default.
    """

    text: Optional[str] = None
    fund_houses: Sequence[str] = ()
    categories: Sequence[str] = ()
    plans: Sequence[str] = ()
    risk_tiers: Sequence[int] = ()
    offset: int = 0
    limit: Optional[int] = None


@dataclass(slots=True)
class SearchFacets:
    """Match counts per filter dimension over every result of a query.

    Counts cover the filtered match set before pagination, so a client can
    show how many results each further refinement would keep.

    Attributes:
        categories: Matches per top-level category.
        sub_categories: Matches per sub-category.
        fund_houses: Matches per fund house.
        risk_tiers: Matches per ordinal risk tier.
    """

    categories: Dict[str, int] = field(default_factory=dict)
    sub_categories: Dict[str, int] = field(default_factory=dict)
    fund_houses: Dict[str, int] = field(default_factory=dict)
    risk_tiers: Dict[int, int] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResult:
    """Ranked page of fund entities returned by a search.

    Attributes:
        funds: Entities on this page, in ranked order.
        scores: Relevance score per entity in ``funds`` (0.0 without text).
        total: Number of matches across all pages.
        has_more: Whether results remain past this page.
        offset: Offset the page starts at.
        limit: Page size applied.
        search_time_ms: Wall-clock time spent answering the query.
        facets: Per-dimension counts over all ``total`` matches.
    """

    funds: Sequence[FundEntity]
    scores: Sequence[float]
    total: int
    has_more: bool
    offset: int
    limit: int
    search_time_ms: float
    facets: SearchFacets = field(default_factory=SearchFacets)

    @property
    def scheme_codes(self) -> list[int]:
        return [fund.scheme_code for fund in self.funds]


class LoaderState(str, Enum):
    """Lifecycle of a checkpointed catalog build."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class StreamCursor:
    """Position after the last consumed catalog object.

    ``ordinal`` counts well-formed objects consumed from the source and
    ``byte_offset`` is the byte position just past the last one.
    """

    ordinal: int = 0
    byte_offset: int = 0


@dataclass(frozen=True, slots=True)
class LoaderErrorEntry:
    """Record that could not be processed during a checkpointed build."""

    scheme_code: Optional[int]
    reason: str
    ordinal: int
    recorded_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheme_code": self.scheme_code,
            "reason": self.reason,
            "ordinal": self.ordinal,
            "recorded_at": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LoaderErrorEntry":
        code = payload.get("scheme_code")
        return cls(
            scheme_code=None if code is None else int(code),
            reason=str(payload.get("reason", "")),
            ordinal=int(payload.get("ordinal", 0)),
            recorded_at=str(payload.get("recorded_at", "")),
        )


@dataclass(frozen=True, slots=True)
class LoaderCheckpoint:
    """Durable progress marker of a checkpointed catalog build.

    Attributes:
        total_records: Estimated or exact number of objects in the source.
        total_is_exact: ``True`` once the whole source has been scanned.
        processed_count: Objects consumed so far; never decreases.
        cursor: Resume position in the source stream.
        entity_count: Committed rows in the entity store.
        entity_bytes: Committed byte length of the entity store.
        errors: Failed records eligible for an explicit retry.
        source: Path of the source catalog the checkpoint belongs to.
        updated_at: ISO-8601 timestamp of the last commit.
    """

    total_records: int = 0
    total_is_exact: bool = False
    processed_count: int = 0
    cursor: StreamCursor = StreamCursor()
    entity_count: int = 0
    entity_bytes: int = 0
    errors: Tuple[LoaderErrorEntry, ...] = ()
    source: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def state(self) -> LoaderState:
        if self.processed_count == 0 and not self.total_is_exact:
            return LoaderState.NOT_STARTED
        if self.total_is_exact and self.processed_count >= self.total_records:
            return LoaderState.COMPLETE
        return LoaderState.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": "1",
            "total_records": self.total_records,
            "total_is_exact": self.total_is_exact,
            "processed_count": self.processed_count,
            "cursor": {"ordinal": self.cursor.ordinal, "byte_offset": self.cursor.byte_offset},
            "entity_count": self.entity_count,
            "entity_bytes": self.entity_bytes,
            "errors": [entry.to_dict() for entry in self.errors],
            "source": self.source,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LoaderCheckpoint":
        cursor = payload.get("cursor") or {}
        return cls(
            total_records=int(payload.get("total_records", 0)),
            total_is_exact=bool(payload.get("total_is_exact", False)),
            processed_count=int(payload.get("processed_count", 0)),
            cursor=StreamCursor(
                ordinal=int(cursor.get("ordinal", 0)),
                byte_offset=int(cursor.get("byte_offset", 0)),
            ),
            entity_count=int(payload.get("entity_count", 0)),
            entity_bytes=int(payload.get("entity_bytes", 0)),
            errors=tuple(LoaderErrorEntry.from_dict(item) for item in payload.get("errors", ())),
            source=payload.get("source"),
            updated_at=payload.get("updated_at"),
        )


@dataclass(slots=True)
class LoaderProgress:
    """Outcome of one checkpointed loader call.

    Attributes:
        processed: Objects consumed from the source so far.
        total: Estimated or exact object count of the source.
        total_is_exact: Whether ``total`` is exact.
        is_complete: ``True`` once the whole source has been processed.
        state: Loader lifecycle state after the call.
        batch: Entities indexed during this call.
        errors: Failures recorded during this call.
    """

    processed: int
    total: int
    total_is_exact: bool
    is_complete: bool
    state: LoaderState
    batch: Sequence[FundEntity] = field(default_factory=tuple)
    errors: Sequence[LoaderErrorEntry] = field(default_factory=tuple)

    @property
    def progress(self) -> float:
        """Percentage of the source processed, clamped to ``[0, 100]``."""

        if self.is_complete:
            return 100.0
        if self.total <= 0:
            return 0.0
        return round(min(100.0, self.processed * 100.0 / self.total), 2)
