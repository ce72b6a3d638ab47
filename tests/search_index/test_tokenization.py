from __future__ import annotations

from FundCatalog.SearchIndex.tokenization import expand_prefixes, normalize_text, search_tokens, tokenize


def test_tokenize_strips_punctuation_and_short_tokens() -> None:
    assert tokenize("HDFC Mid-Cap Fund (G) - Direct") == ["hdfc", "mid", "cap", "fund", "direct"]
    assert tokenize("a b", min_length=1) == ["a", "b"]
    assert normalize_text("L&T Top-100") == "l t top 100"


def test_expand_prefixes_is_bounded() -> None:
    assert expand_prefixes("opportunities") == ["opp", "oppo", "oppor", "opport"]
    assert expand_prefixes("cap") == ["cap"]
    assert expand_prefixes("it") == []


def test_search_tokens_merge_every_text() -> None:
    tokens = search_tokens(["Axis Liquid", "Debt"], min_length=2, prefix_min_length=3, prefix_max_length=4)

    assert tokens == frozenset({"axis", "axi", "liquid", "liq", "liqu", "debt", "deb"})
