# === NAVMAP v1 ===
# {
#   "module": "FundCatalog.SearchIndex.classifier",
#   "purpose": "Ordered rule tables mapping raw catalog records to fund entities",
#   "sections": [
#     {"id": "fund-house-rules", "name": "FUND_HOUSE_RULES", "anchor": "data-fund-house-rules", "kind": "data"},
#     {"id": "category-rules", "name": "CATEGORY_RULES", "anchor": "data-category-rules", "kind": "data"},
#     {"id": "risk-tiers", "name": "RISK_TIERS", "anchor": "data-risk-tiers", "kind": "data"},
#     {"id": "fundclassifier", "name": "FundClassifier", "anchor": "class-fundclassifier", "kind": "class"},
#     {"id": "classify", "name": "classify", "anchor": "function-classify", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Rule-driven classification of catalog records into fund entities.

Every sub-decision (fund house, category, plan, option, risk tier) is an
ordered table of ``(pattern, result)`` rules evaluated top-down against the
lower-cased scheme name, first match wins. Order matters: more specific
keywords sit above coarser ones, e.g. ``large & mid cap`` must be tried
before both ``large cap`` and ``mid cap``.

Classification is total. A record matching no rule still produces an
``Others`` / ``Miscellaneous`` / ``Regular`` / ``Growth`` entity.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional, Pattern, Sequence, Tuple

from .config import IndexConfig
from .tokenization import search_tokens
from .types import FundEntity, RawFundRecord

__all__ = (
    "CATEGORY_RULES",
    "DEFAULT_CATEGORY",
    "FUND_HOUSE_RULES",
    "FundClassifier",
    "OTHERS_FUND_HOUSE",
    "RISK_LABELS",
    "RISK_TIERS",
    "SUBCATEGORIES_BY_CATEGORY",
    "CategoryRule",
    "classify",
    "risk_label",
)


# --- Globals ---


def _rule(pattern: str) -> Pattern[str]:
    return re.compile(pattern)


OTHERS_FUND_HOUSE = "Others"

FUND_HOUSE_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (_rule(r"\b(?:sbi|state bank)\b"), "SBI Mutual Fund"),
    (_rule(r"\bhdfc\b"), "HDFC Mutual Fund"),
    (_rule(r"\bicici\b"), "ICICI Prudential Mutual Fund"),
    (_rule(r"\baxis\b"), "Axis Mutual Fund"),
    (_rule(r"\bkotak\b"), "Kotak Mahindra Mutual Fund"),
    (_rule(r"\b(?:aditya birla|birla sun life|absl)\b"), "Aditya Birla Sun Life Mutual Fund"),
    (_rule(r"\b(?:nippon|reliance)\b"), "Nippon India Mutual Fund"),
    (_rule(r"\bfranklin\b"), "Franklin Templeton Mutual Fund"),
    (_rule(r"\bdsp\b"), "DSP Mutual Fund"),
    (_rule(r"\bl&t\b"), "L&T Mutual Fund"),
    (_rule(r"\bmirae\b"), "Mirae Asset Mutual Fund"),
    (_rule(r"\buti\b"), "UTI Mutual Fund"),
    (_rule(r"\b(?:parag parikh|ppfas)\b"), "PPFAS Mutual Fund"),
    (_rule(r"\bmotilal\b"), "Motilal Oswal Mutual Fund"),
    (_rule(r"\binvesco\b"), "Invesco Mutual Fund"),
    (_rule(r"\btata\b"), "Tata Mutual Fund"),
    (_rule(r"\bmahindra\b"), "Mahindra Mutual Fund"),
    (_rule(r"\bcanara\b"), "Canara Robeco Mutual Fund"),
    (_rule(r"\bquant\b"), "Quant Mutual Fund"),
    (_rule(r"\bsundaram\b"), "Sundaram Mutual Fund"),
)


@dataclass(frozen=True)
class CategoryRule:
    """One row of the category table: a name pattern and its classification."""

    pattern: Pattern[str]
    category: str
    sub_category: str


def _category(pattern: str, category: str, sub_category: str) -> CategoryRule:
    return CategoryRule(_rule(pattern), category, sub_category)


CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    # Equity
    _category(r"\blarge\s*(?:&|and)\s*mid\s*cap\b", "Equity", "Large & Mid Cap"),
    _category(r"\b(?:large cap|largecap|bluechip|blue chip|top 100)\b", "Equity", "Large Cap"),
    _category(r"\b(?:mid cap|midcap)\b", "Equity", "Mid Cap"),
    _category(r"\b(?:small cap|smallcap)\b", "Equity", "Small Cap"),
    _category(r"\b(?:flexi cap|flexicap)\b", "Equity", "Flexi Cap"),
    _category(r"\b(?:multi cap|multicap)\b", "Equity", "Multi Cap"),
    _category(r"\b(?:elss|tax|80c)\b", "Equity", "ELSS"),
    _category(r"\b(?:focused|focus)\b", "Equity", "Focused"),
    _category(r"\b(?:value|contra)\b", "Equity", "Value/Contra"),
    _category(r"\bdividend yield\b", "Equity", "Dividend Yield"),
    _category(
        r"\b(?:sectoral|thematic|pharma|it|bank|banking|infra|infrastructure|psu|defence|manufacturing)\b",
        "Equity",
        "Sectoral/Thematic",
    ),
    # Debt
    _category(r"\bliquid\b", "Debt", "Liquid"),
    _category(r"\b(?:ultra short|ultrashort)\b", "Debt", "Ultra Short"),
    _category(r"\bshort (?:duration|term)\b", "Debt", "Short Duration"),
    _category(r"\bmedium (?:duration|term)\b", "Debt", "Medium Duration"),
    _category(r"\bgilt\b", "Debt", "Gilt"),
    _category(r"\blong (?:duration|term)\b", "Debt", "Long Duration"),
    _category(r"\b(?:corporate bond|credit)\b", "Debt", "Corporate Bond"),
    _category(r"\b(?:dynamic bond|duration)\b", "Debt", "Dynamic Bond"),
    # Hybrid
    _category(r"\b(?:conservative hybrid|monthly income)\b", "Hybrid", "Conservative Hybrid"),
    _category(
        r"\b(?:aggressive hybrid|balanced advantage|balanced)\b",
        "Hybrid",
        "Balanced/Aggressive Hybrid",
    ),
    _category(r"\barbitrage\b", "Hybrid", "Arbitrage"),
    # Passive
    _category(r"\b(?:index|nifty|sensex|etf)\b", "Others", "Index Fund/ETF"),
    # Loose fallbacks
    _category(r"\b(?:equity|growth|opportunities)\b", "Equity", "Multi Cap"),
    _category(r"\b(?:income|debt|bond)\b", "Debt", "Medium Duration"),
)

DEFAULT_CATEGORY: Tuple[str, str] = ("Others", "Miscellaneous")


def _subcategories_by_category() -> dict[str, Tuple[str, ...]]:
    grouped: dict[str, list[str]] = {}
    for rule in CATEGORY_RULES:
        bucket = grouped.setdefault(rule.category, [])
        if rule.sub_category not in bucket:
            bucket.append(rule.sub_category)
    grouped.setdefault(DEFAULT_CATEGORY[0], []).append(DEFAULT_CATEGORY[1])
    return {category: tuple(values) for category, values in grouped.items()}


SUBCATEGORIES_BY_CATEGORY: Mapping[str, Tuple[str, ...]] = _subcategories_by_category()

RISK_TIERS: Mapping[str, int] = {
    "Liquid": 1,
    "Ultra Short": 1,
    "Short Duration": 2,
    "Medium Duration": 2,
    "Gilt": 2,
    "Long Duration": 2,
    "Corporate Bond": 2,
    "Dynamic Bond": 2,
    "Arbitrage": 3,
    "Conservative Hybrid": 3,
    "Balanced/Aggressive Hybrid": 4,
    "Miscellaneous": 4,
    "Large Cap": 5,
    "Index Fund/ETF": 5,
    "Large & Mid Cap": 6,
    "Mid Cap": 6,
    "Flexi Cap": 6,
    "Multi Cap": 6,
    "ELSS": 6,
    "Focused": 6,
    "Value/Contra": 6,
    "Dividend Yield": 6,
    "Small Cap": 7,
    "Sectoral/Thematic": 7,
}

RISK_LABELS: Mapping[int, str] = {
    1: "Low to Moderate",
    2: "Moderate",
    3: "Moderately High",
    4: "Moderately High",
    5: "High",
    6: "Very High",
    7: "Very High",
}

_PLAN_RULES: Tuple[Tuple[Pattern[str], str], ...] = ((_rule(r"direct"), "Direct"),)
_OPTION_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (_rule(r"(?:dividend|idcw).*reinvest|reinvest.*(?:dividend|idcw)"), "IDCW Reinvestment"),
    (_rule(r"dividend|idcw"), "IDCW Payout"),
)


def _first_match(
    rules: Sequence[Tuple[Pattern[str], str]], text: str, default: str
) -> str:
    for pattern, result in rules:
        if pattern.search(text):
            return result
    return default


def _normalize_name(name: str) -> str:
    # "Mid-Cap" and "Mid  Cap" must hit the same rule as "mid cap".
    return " ".join(name.lower().replace("-", " ").replace("_", " ").split())


def risk_label(tier: int) -> str:
    """Return the riskometer label for an ordinal risk tier."""

    return RISK_LABELS.get(tier, "Moderately High")


# --- Public Classes ---


class FundClassifier:
    """Classify raw catalog records with the module rule tables.

    Args:
        config: Token derivation settings for the generated search tokens.

    Examples:
        >>> entity = FundClassifier().classify(
        ...     RawFundRecord(scheme_code=1, scheme_name="HDFC Mid Cap Opportunities Fund - Direct Growth")
        ... )
        >>> (entity.fund_house, entity.sub_category, entity.plan, entity.option)
        ('HDFC Mutual Fund', 'Mid Cap', 'Direct', 'Growth')
    """

    def __init__(self, config: Optional[IndexConfig] = None) -> None:
        self._config = config or IndexConfig()

    def fund_house(self, name: str) -> str:
        return _first_match(FUND_HOUSE_RULES, _normalize_name(name), OTHERS_FUND_HOUSE)

    def category(self, name: str) -> Tuple[str, str]:
        lowered = _normalize_name(name)
        for rule in CATEGORY_RULES:
            if rule.pattern.search(lowered):
                return rule.category, rule.sub_category
        return DEFAULT_CATEGORY

    def plan(self, name: str) -> str:
        return _first_match(_PLAN_RULES, _normalize_name(name), "Regular")

    def option(self, name: str) -> str:
        return _first_match(_OPTION_RULES, _normalize_name(name), "Growth")

    def classify(self, raw: RawFundRecord) -> FundEntity:
        """Map ``raw`` to a fully populated :class:`FundEntity`.

        Args:
            raw: Validated catalog record.

        Returns:
            FundEntity whose derived fields come from the first matching rule
            of each table, or the documented defaults.
        """
        name = raw.scheme_name
        fund_house = self.fund_house(name)
        category, sub_category = self.category(name)
        config = self._config
        tokens = search_tokens(
            (name, fund_house, category, sub_category),
            min_length=config.min_token_length,
            prefix_min_length=config.prefix_min_length,
            prefix_max_length=config.prefix_max_length,
        )
        return FundEntity(
            scheme_code=raw.scheme_code,
            scheme_name=name,
            fund_house=fund_house,
            category=category,
            sub_category=sub_category,
            plan=self.plan(name),
            option=self.option(name),
            risk_tier=RISK_TIERS.get(sub_category, RISK_TIERS[DEFAULT_CATEGORY[1]]),
            search_tokens=tokens,
            isin_growth=raw.isin_growth,
            isin_div_reinvestment=raw.isin_div_reinvestment,
        )


_DEFAULT_CLASSIFIER = FundClassifier()


def classify(raw: RawFundRecord) -> FundEntity:
    """Classify ``raw`` with the default token settings."""

    return _DEFAULT_CLASSIFIER.classify(raw)
