"""
HTTP-style interface for the fund search service.

Web routes for fund search, autocomplete and catalog analytics delegate to
:class:`FundSearchAPI`, which parses camelCase query parameters into
:class:`SearchFilters`, calls the service, and serializes the results back to
camelCase bodies. Every handler returns ``(HTTPStatus, body)``.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .classifier import risk_label
from .service import FundSearchService, RequestValidationError
from .types import FundEntity, SearchFacets, SearchFilters

__all__ = ("FundSearchAPI", "entity_to_json", "facets_to_json")


def entity_to_json(entity: FundEntity) -> Dict[str, Any]:
    """Render an entity with the public camelCase field names."""

    return {
        "schemeCode": entity.scheme_code,
        "schemeName": entity.scheme_name,
        "fundHouse": entity.fund_house,
        "category": entity.category,
        "subCategory": entity.sub_category,
        "plan": entity.plan,
        "option": entity.option,
        "riskTier": entity.risk_tier,
        "riskLevel": risk_label(entity.risk_tier),
        "isinGrowth": entity.isin_growth,
        "isinDivReinvestment": entity.isin_div_reinvestment,
    }


def facets_to_json(facets: SearchFacets) -> Dict[str, Any]:
    """Render search facets with camelCase keys; risk tiers are keyed by their string form."""

    return {
        "categories": dict(facets.categories),
        "subCategories": dict(facets.sub_categories),
        "fundHouses": dict(facets.fund_houses),
        "riskTiers": {str(tier): count for tier, count in facets.risk_tiers.items()},
    }


class FundSearchAPI:
    """Minimal synchronous handlers for the fund search routes.

    Examples:
        >>> api = FundSearchAPI(service)  # doctest: +SKIP
        >>> status, body = api.get_search({"searchText": "hdfc", "category": ["Mid Cap"]})  # doctest: +SKIP
        >>> status, [fund["schemeCode"] for fund in body["funds"]]  # doctest: +SKIP
        (<HTTPStatus.OK: 200>, [2])
    """

    def __init__(self, service: FundSearchService) -> None:
        if not isinstance(service, FundSearchService):
            raise TypeError("service must be a FundSearchService instance")
        self._service = service

    def get_search(self, params: Mapping[str, Any]) -> Tuple[HTTPStatus, Mapping[str, Any]]:
        """Handle ``GET /api/funds/search``.

        Args:
            params: Query parameters: ``searchText``, ``fundHouse``,
                ``category``, ``plan``, ``riskTier``, ``limit`` and ``offset``.
                List parameters accept a list or a comma-separated string.

        Returns:
            ``(200, body)`` with ``funds``, ``total``, ``hasMore``, ``offset``,
            ``limit``, ``searchTime`` and ``facets``, or ``(400, {"error": ...})``.
        """
        try:
            filters = self._parse_filters(params)
            result = self._service.search(filters)
        except (TypeError, ValueError) as exc:
            # RequestValidationError is a ValueError.
            return HTTPStatus.BAD_REQUEST, {"error": str(exc)}
        body = {
            "funds": [
                {**entity_to_json(fund), "score": score}
                for fund, score in zip(result.funds, result.scores)
            ],
            "total": result.total,
            "hasMore": result.has_more,
            "offset": result.offset,
            "limit": result.limit,
            "searchTime": round(result.search_time_ms, 3),
            "facets": facets_to_json(result.facets),
        }
        return HTTPStatus.OK, body

    def get_suggestions(self, params: Mapping[str, Any]) -> Tuple[HTTPStatus, Mapping[str, Any]]:
        """Handle ``GET /api/funds/suggestions`` (``q`` and optional ``limit``)."""

        query = params.get("q", params.get("query"))
        if not isinstance(query, str):
            return HTTPStatus.BAD_REQUEST, {"error": "q must be a string"}
        try:
            limit = int(params.get("limit", 10))
            suggestions = self._service.suggest(query, limit=limit)
        except (TypeError, ValueError) as exc:
            return HTTPStatus.BAD_REQUEST, {"error": str(exc)}
        return HTTPStatus.OK, {"suggestions": suggestions}

    def get_analytics(self) -> Tuple[HTTPStatus, Mapping[str, Any]]:
        """Handle ``GET /api/funds/analytics``."""

        analytics = self._service.analytics()
        return HTTPStatus.OK, {
            "totalFunds": analytics.total_funds,
            "categories": dict(analytics.categories),
            "subCategories": dict(analytics.sub_categories),
            "fundHouses": dict(analytics.fund_houses),
            "topFundHouses": [
                {"name": name, "count": count} for name, count in analytics.top_fund_houses
            ],
        }

    def _parse_filters(self, params: Mapping[str, Any]) -> SearchFilters:
        text = params.get("searchText", params.get("q"))
        if text is not None and not isinstance(text, str):
            raise TypeError("searchText must be a string")
        return SearchFilters(
            text=text,
            fund_houses=_as_list(params.get("fundHouse")),
            categories=_as_list(params.get("category")),
            plans=_as_list(params.get("plan")),
            risk_tiers=[_as_int(value, "riskTier") for value in _as_list(params.get("riskTier"))],
            offset=_as_int(params.get("offset", 0), "offset"),
            limit=None if params.get("limit") is None else _as_int(params["limit"], "limit"),
        )


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Sequence):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise RequestValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise RequestValidationError(f"{name} must be an integer, received {value!r}") from exc
