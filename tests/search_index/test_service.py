"""Search, suggestion and pagination tests for the query engine."""

from __future__ import annotations

import logging

import pytest
from hypothesis import given, settings, strategies as st

from FundCatalog.SearchIndex.classifier import classify
from FundCatalog.SearchIndex.config import QueryConfig
from FundCatalog.SearchIndex.index import FundIndex
from FundCatalog.SearchIndex.observability import Observability
from FundCatalog.SearchIndex.service import (
    FundSearchService,
    RequestValidationError,
    build_stats_snapshot,
    verify_pagination,
)
from FundCatalog.SearchIndex.types import RawFundRecord, SearchFilters

NAMES = {
    1: "HDFC Top 100 Fund - Regular Plan - Growth",
    2: "HDFC Mid-Cap Opportunities Fund - Regular Plan - Growth",
    3: "HDFC Mid-Cap Opportunities Fund - Direct Plan - Growth",
    4: "SBI Small Cap Fund - Direct Plan - Growth",
    5: "Axis Liquid Fund - Direct Plan - Daily IDCW Reinvestment",
    6: "ICICI Prudential Bluechip Fund - Growth",
    7: "Kotak Equity Arbitrage Fund - Regular Plan - Dividend",
    8: "Nippon India Nifty 50 Index Fund - Direct Plan - Growth",
    9: "Some Unknown Scheme",
}


def _service(names=NAMES, **config) -> FundSearchService:
    index = FundIndex()
    for code, name in names.items():
        index.index(classify(RawFundRecord(scheme_code=code, scheme_name=name)))
    return FundSearchService(index, config=QueryConfig(**config))


SERVICE = _service()


def _codes(**filters) -> list:
    return SERVICE.search(SearchFilters(**filters)).scheme_codes


def test_fund_house_query_returns_every_scheme_of_the_house() -> None:
    result = SERVICE.search(SearchFilters(text="hdfc"))

    assert result.scheme_codes == [1, 2, 3]
    assert result.total == 3
    assert result.has_more is False
    assert all(score > 0 for score in result.scores)


def test_text_matches_across_token_boundaries() -> None:
    assert sorted(_codes(text="midcap")) == [2, 3]
    # "cap" also matches the Large Cap and Small Cap sub-categories.
    assert sorted(_codes(text="mid cap")) == [1, 2, 3, 4, 6]


def test_text_is_combined_with_filters() -> None:
    assert _codes(text="hdfc", categories=["Mid Cap"]) == [2, 3]
    assert _codes(text="hdfc", categories=["Mid Cap"], plans=["Direct"]) == [3]
    assert _codes(text="hdfc", plans=["direct"]) == [3]


def test_filter_labels_ignore_case_and_surrounding_whitespace() -> None:
    assert _codes(text="hdfc", categories=["mid cap"]) == [2, 3]
    assert _codes(categories=["EQUITY"], fund_houses=["  hdfc mutual fund "]) == [3, 2, 1]
    assert _codes(plans=[" DIRECT "], categories=["small  cap"]) == [4]
    assert _codes(fund_houses=["HDFC"]) == []


def test_facets_count_every_match_not_just_the_page() -> None:
    result = SERVICE.search(SearchFilters(text="hdfc", limit=1))

    assert result.scheme_codes == [1]
    assert result.facets.categories == {"Equity": 3}
    assert result.facets.sub_categories == {"Large Cap": 1, "Mid Cap": 2}
    assert result.facets.fund_houses == {"HDFC Mutual Fund": 3}
    assert result.facets.risk_tiers == {5: 1, 6: 2}


def test_facets_follow_the_active_filters() -> None:
    facets = SERVICE.search(SearchFilters(categories=["Equity"])).facets
    empty = SERVICE.search(SearchFilters(text="zzzz")).facets

    assert facets.sub_categories == {"Large Cap": 2, "Mid Cap": 2, "Small Cap": 1}
    assert facets.fund_houses == {"HDFC Mutual Fund": 3, "SBI Mutual Fund": 1, "ICICI Prudential Mutual Fund": 1}
    assert list(facets.risk_tiers.items()) == [(5, 2), (6, 2), (7, 1)]
    assert sum(facets.categories.values()) == 5
    assert (empty.categories, empty.fund_houses, empty.risk_tiers) == ({}, {}, {})


def test_filters_without_text_browse_by_name() -> None:
    assert _codes(categories=["Equity"]) == [3, 2, 1, 6, 4]
    assert _codes(fund_houses=["Axis Mutual Fund"]) == [5]
    assert _codes(risk_tiers=[1]) == [5]
    assert _codes(categories=["Liquid", "Arbitrage"]) == [5, 7]
    assert _codes(categories=["Equity"], fund_houses=["SBI Mutual Fund", "ICICI Prudential Mutual Fund"]) == [6, 4]


def test_blank_text_is_a_browse_over_everything() -> None:
    result = SERVICE.search(SearchFilters(text="   "))

    assert result.total == len(NAMES)
    assert set(result.scores) == {0.0}


def test_unknown_values_match_nothing() -> None:
    assert SERVICE.search(SearchFilters(text="zzzz")).total == 0
    assert _codes(fund_houses=["Nobody Mutual Fund"]) == []
    assert _codes(text="hdfc", categories=["Gilt"]) == []
    assert SERVICE.search(SearchFilters(text="---")).total == 0


def test_fuzzy_matching_tolerates_one_edit() -> None:
    assert sorted(_codes(text="xdfc")) == [1, 2, 3]
    assert _service(fuzzy_max_distance=0).search(SearchFilters(text="xdfc")).total == 0
    # Short tokens never match fuzzily.
    assert _codes(text="xbi") == []


def test_equal_scores_are_ordered_by_scheme_code() -> None:
    service = _service({30: "Axis Liquid Fund", 10: "Axis Liquid Fund", 20: "Axis Liquid Fund"})

    result = service.search(SearchFilters(text="axis liquid"))

    assert result.scheme_codes == [10, 20, 30]
    assert len(set(result.scores)) == 1


def test_better_matches_rank_first() -> None:
    service = _service({1: "Liquid Plus", 2: "Axis Liquid Fund", 3: "Axis Overnight Fund"})

    result = service.search(SearchFilters(text="liquid"))

    # Name prefix (plus sub-category) outranks a name substring.
    assert result.scheme_codes[:2] == [1, 2]
    assert result.scores[0] > result.scores[1]


def test_pagination_bounds() -> None:
    first = SERVICE.search(SearchFilters(text="hdfc", limit=2))
    second = SERVICE.search(SearchFilters(text="hdfc", limit=2, offset=2))
    beyond = SERVICE.search(SearchFilters(text="hdfc", limit=2, offset=10))

    assert (first.scheme_codes, first.has_more, first.total) == ([1, 2], True, 3)
    assert (second.scheme_codes, second.has_more) == ([3], False)
    assert (beyond.scheme_codes, beyond.has_more, beyond.total) == ([], False, 3)


def test_default_limit_applies() -> None:
    service = _service(default_limit=4)

    result = service.search(SearchFilters())

    assert result.limit == 4
    assert len(result.funds) == 4
    assert result.has_more is True


@pytest.mark.parametrize(
    "filters",
    [
        SearchFilters(limit=0),
        SearchFilters(limit=-1),
        SearchFilters(limit=1001),
        SearchFilters(offset=-1),
        SearchFilters(risk_tiers=["high"]),  # type: ignore[list-item]
    ],
)
def test_invalid_requests_are_rejected(filters: SearchFilters) -> None:
    with pytest.raises(RequestValidationError):
        SERVICE.search(filters)


@settings(max_examples=40, deadline=None)
@given(
    page_size=st.integers(min_value=1, max_value=12),
    text=st.sampled_from([None, "fund", "hdfc", "growth direct", "cap"]),
    categories=st.sampled_from([[], ["Equity"], ["Debt", "Hybrid"]]),
)
def test_pages_partition_the_full_ranking(page_size: int, text, categories) -> None:
    check = verify_pagination(SERVICE, SearchFilters(text=text, categories=categories), page_size=page_size)

    assert check.consistent, check


def test_suggestions_list_fund_houses_before_tokens() -> None:
    assert SERVICE.suggest("hd") == ["HDFC Mutual Fund", "hdf", "hdfc"]
    assert SERVICE.suggest("hdfc mutual", limit=5) == ["HDFC Mutual Fund"]
    assert SERVICE.suggest("liq", limit=2) == ["liq", "liqu"]
    assert SERVICE.suggest("   ") == []
    with pytest.raises(RequestValidationError):
        SERVICE.suggest("hd", limit=0)


def test_analytics_summarizes_the_catalog() -> None:
    analytics = SERVICE.analytics()

    assert analytics.total_funds == 9
    assert analytics.categories == {"Equity": 5, "Debt": 1, "Hybrid": 1, "Others": 2}
    assert analytics.sub_categories["Mid Cap"] == 2
    assert analytics.top_fund_houses[0] == ("HDFC Mutual Fund", 3)


def test_search_records_metrics_and_debug_event(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="FundCatalog.SearchIndex")
    observability = Observability()
    service = FundSearchService(SERVICE.index, observability=observability)

    service.search(SearchFilters(text="hdfc"))
    service.search(SearchFilters())

    metrics = observability.metrics
    assert metrics.counter_value("search_requests", mode="text") == 1.0
    assert metrics.counter_value("search_requests", mode="browse") == 1.0
    events = [record for record in caplog.records if record.getMessage() == "fund-search"]
    assert [record.event["mode"] for record in events] == ["text", "browse"]
    snapshot = build_stats_snapshot(service.index, observability)
    assert snapshot["index"]["funds"] == 9
    assert snapshot["metrics"]["latencies"]


def test_house_and_category_filters_on_a_two_fund_catalog() -> None:
    service = _service({1: "HDFC Large Cap Fund Direct Growth", 2: "HDFC Mid Cap Fund Regular Growth"})

    by_house = service.search(SearchFilters(text="hdfc", fund_houses=["HDFC Mutual Fund"]))
    by_category = service.search(SearchFilters(text="hdfc", categories=["Mid Cap"]))

    assert sorted(by_house.scheme_codes) == [1, 2]
    assert {fund.fund_house for fund in by_house.funds} == {"HDFC Mutual Fund"}
    assert by_category.scheme_codes == [2]
    assert sorted(service.search(SearchFilters(text="midcap")).scheme_codes) == [2]


@settings(max_examples=30, deadline=None)
@given(
    house=st.sampled_from(sorted(SERVICE.index.fund_houses())),
    text=st.sampled_from([None, "fund", "growth", "direct plan"]),
)
def test_every_result_honours_the_fund_house_filter(house: str, text) -> None:
    result = SERVICE.search(SearchFilters(text=text, fund_houses=[house], limit=1000))

    assert all(fund.fund_house == house for fund in result.funds)
    if text is None:
        assert set(result.scheme_codes) == SERVICE.index.codes_for_fund_house(house)
