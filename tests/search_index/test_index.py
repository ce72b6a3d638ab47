"""Consistency tests for the inverted fund index."""

from __future__ import annotations

import pytest
from hypothesis import given, settings, strategies as st

from FundCatalog.SearchIndex.classifier import classify
from FundCatalog.SearchIndex.index import FundIndex
from FundCatalog.SearchIndex.types import RawFundRecord


def _entity(code: int, name: str):
    return classify(RawFundRecord(scheme_code=code, scheme_name=name))


def _assert_consistent(index: FundIndex) -> None:
    for entity in index.all():
        for token in entity.search_tokens:
            assert entity.scheme_code in index.codes_for_token(token)
        assert entity.scheme_code in index.codes_for_category(entity.sub_category)
        assert entity.scheme_code in index.codes_for_category(entity.category)
        assert entity.scheme_code in index.codes_for_fund_house(entity.fund_house)


def test_index_registers_entity_in_every_mapping() -> None:
    index = FundIndex()
    entity = _entity(2, "HDFC Mid-Cap Opportunities Fund - Direct Plan - Growth")

    assert index.index(entity) is True

    assert index.get(2) == entity
    assert 2 in index and len(index) == 1
    assert index.codes_for_token("hdfc") == frozenset({2})
    assert index.codes_for_category("Mid Cap") == {2}
    assert index.codes_for_category("Equity") == {2}
    assert index.codes_for_fund_house("HDFC Mutual Fund") == frozenset({2})
    _assert_consistent(index)


def test_overwrite_unlinks_stale_postings() -> None:
    index = FundIndex()
    index.index(_entity(1, "HDFC Liquid Fund"))

    index.index(_entity(1, "SBI Small Cap Fund"), on_conflict="overwrite")

    assert index.count() == 1
    assert index.get(1).scheme_name == "SBI Small Cap Fund"
    assert not index.has_token("hdfc")
    assert index.codes_for_token("liquid") == frozenset()
    assert index.codes_for_category("Liquid") == set()
    assert index.codes_for_category("Debt") == set()
    assert index.codes_for_fund_house("HDFC Mutual Fund") == frozenset()
    assert index.tokens_with_prefix("hdf") == []
    assert "HDFC Mutual Fund" not in index.fund_houses()
    assert index.categories() == ["Equity"]
    _assert_consistent(index)


def test_skip_keeps_the_first_entity() -> None:
    index = FundIndex()
    index.index(_entity(1, "HDFC Liquid Fund"))

    assert index.index(_entity(1, "SBI Small Cap Fund"), on_conflict="skip") is False

    assert index.get(1).scheme_name == "HDFC Liquid Fund"
    assert index.codes_for_token("sbi") == frozenset()


def test_unknown_conflict_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        FundIndex().index(_entity(1, "HDFC Liquid Fund"), on_conflict="merge")  # type: ignore[arg-type]


def test_prefix_and_length_lookups() -> None:
    index = FundIndex()
    index.index_many([_entity(1, "HDFC Liquid Fund"), _entity(2, "Axis Liquid Fund")])

    assert index.tokens_with_prefix("liq") == ["liq", "liqu", "liqui", "liquid"]
    assert index.tokens_with_prefix("liq", limit=2) == ["liq", "liqu"]
    assert "hdfc" in index.tokens_of_length(4)
    assert index.codes_for_token("liquid") == frozenset({1, 2})


def test_counts_and_bulk_get() -> None:
    index = FundIndex()
    index.index_many(
        [
            _entity(1, "HDFC Liquid Fund"),
            _entity(2, "HDFC Mid Cap Fund"),
            _entity(3, "Axis Small Cap Fund"),
        ]
    )

    assert index.category_counts() == {"Debt": 1, "Equity": 2}
    assert index.sub_category_counts() == {"Liquid": 1, "Mid Cap": 1, "Small Cap": 1}
    assert index.fund_house_counts() == {"HDFC Mutual Fund": 2, "Axis Mutual Fund": 1}
    assert [entity.scheme_code for entity in index.bulk_get([3, 99, 1])] == [3, 1]
    assert index.all_codes() == {1, 2, 3}


_words = st.sampled_from(
    ["HDFC", "SBI", "Axis", "Liquid", "Mid", "Cap", "Small", "Gilt", "Index", "Fund", "Direct", "Growth", "IDCW"]
)


@settings(max_examples=50, deadline=None)
@given(
    st.lists(
        st.tuples(st.integers(min_value=1, max_value=20), st.lists(_words, min_size=1, max_size=6)),
        max_size=30,
    )
)
def test_overwrites_keep_every_mapping_consistent(writes: list) -> None:
    index = FundIndex()
    expected = {}
    for code, words in writes:
        entity = _entity(code, " ".join(words))
        index.index(entity, on_conflict="overwrite")
        expected[code] = entity

    assert {entity.scheme_code: entity for entity in index.all()} == expected
    _assert_consistent(index)
    live_tokens = set().union(*(entity.search_tokens for entity in expected.values()))
    assert set(index.tokens_with_prefix("")) == live_tokens
    assert index.token_count() == len(live_tokens)
