"""
Inverted index over classified fund entities.

:class:`FundIndex` owns three mappings from a discriminator to scheme codes:

- token index: search token -> codes whose token set contains it
- category index: sub-category -> codes (each code sits in exactly one bucket;
  top-level categories such as ``Equity`` resolve to the union of their
  sub-category buckets)
- fund-house index: fund house -> codes

Category and fund-house lookups ignore case and surrounding whitespace.

Alongside the mappings it keeps the entity registry, a sorted token vocabulary
for prefix range lookups and per-length token lists for bounded fuzzy
matching. All auxiliary structures are maintained on write so the read path
never mutates anything. The registry is updated last, which makes a code
visible to queries only once every mapping already knows about it.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from collections import Counter
from threading import RLock
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Set

from .types import FundEntity

__all__ = ("ConflictPolicy", "FundIndex", "fold_label")

ConflictPolicy = Literal["overwrite", "skip"]

_EMPTY: frozenset[int] = frozenset()


def fold_label(label: str) -> str:
    """Return the lookup key of a category, fund-house or plan label."""

    return " ".join(label.split()).casefold()


class FundIndex:
    """Token, category and fund-house inverted indexes plus the entity registry.

    The index has a single writer at a time; concurrent readers are safe while
    no writer is active.

    Examples:
        >>> from FundCatalog.SearchIndex.classifier import classify
        >>> from FundCatalog.SearchIndex.types import RawFundRecord
        >>> index = FundIndex()
        >>> index.index(classify(RawFundRecord(1, "HDFC Mid Cap Fund Regular Growth")))
        True
        >>> sorted(index.codes_for_token("hdfc")), sorted(index.codes_for_category("Equity"))
        ([1], [1])
    """

    def __init__(self) -> None:
        self._entities: Dict[int, FundEntity] = {}
        self._tokens: Dict[str, Set[int]] = {}
        self._categories: Dict[str, Set[int]] = {}
        self._fund_houses: Dict[str, Set[int]] = {}
        self._children: Dict[str, Set[str]] = {}
        self._labels: Dict[str, str] = {}
        self._vocabulary: List[str] = []
        self._by_length: Dict[int, List[str]] = {}
        self._lock = RLock()

    # --- Writes ---

    def index(self, entity: FundEntity, *, on_conflict: ConflictPolicy = "overwrite") -> bool:
        """Insert ``entity`` into every mapping as one logical step.

        Args:
            entity: Classified entity to index.
            on_conflict: ``"skip"`` leaves an already indexed code untouched;
                ``"overwrite"`` replaces it (last write wins).

        Returns:
            ``True`` when the entity was written, ``False`` when skipped.
        """
        if on_conflict not in ("overwrite", "skip"):
            raise ValueError(f"Unsupported conflict policy: {on_conflict!r}")
        code = entity.scheme_code
        with self._lock:
            previous = self._entities.get(code)
            if previous is not None:
                if on_conflict == "skip":
                    return False
                if previous == entity:
                    return True
                self._unlink(previous)
            for token in entity.search_tokens:
                postings = self._tokens.get(token)
                if postings is None:
                    postings = self._tokens[token] = set()
                    self._add_vocabulary(token)
                postings.add(code)
            self._categories.setdefault(entity.sub_category, set()).add(code)
            self._children.setdefault(entity.category, set()).add(entity.sub_category)
            self._fund_houses.setdefault(entity.fund_house, set()).add(code)
            for label in (entity.category, entity.sub_category, entity.fund_house):
                self._labels.setdefault(fold_label(label), label)
            self._entities[code] = entity
            return True

    def index_many(
        self, entities: Iterable[FundEntity], *, on_conflict: ConflictPolicy = "overwrite"
    ) -> int:
        """Index several entities and return how many were written."""

        written = 0
        with self._lock:
            for entity in entities:
                if self.index(entity, on_conflict=on_conflict):
                    written += 1
        return written

    def _unlink(self, entity: FundEntity) -> None:
        code = entity.scheme_code
        for token in entity.search_tokens:
            postings = self._tokens.get(token)
            if postings is None:
                continue
            postings.discard(code)
            if not postings:
                del self._tokens[token]
                self._remove_vocabulary(token)
        bucket = self._categories.get(entity.sub_category)
        if bucket is not None:
            bucket.discard(code)
        houses = self._fund_houses.get(entity.fund_house)
        if houses is not None:
            houses.discard(code)

    def _add_vocabulary(self, token: str) -> None:
        insort(self._vocabulary, token)
        self._by_length.setdefault(len(token), []).append(token)

    def _remove_vocabulary(self, token: str) -> None:
        position = bisect_left(self._vocabulary, token)
        if position < len(self._vocabulary) and self._vocabulary[position] == token:
            del self._vocabulary[position]
        same_length = self._by_length.get(len(token))
        if same_length is not None and token in same_length:
            same_length.remove(token)

    # --- Entity registry ---

    def get(self, scheme_code: int) -> Optional[FundEntity]:
        return self._entities.get(scheme_code)

    def bulk_get(self, scheme_codes: Iterable[int]) -> List[FundEntity]:
        """Return the indexed entities for ``scheme_codes``, skipping unknown codes."""

        entities = self._entities
        return [entities[code] for code in scheme_codes if code in entities]

    def all(self) -> List[FundEntity]:
        return list(self._entities.values())

    def all_codes(self) -> Set[int]:
        return set(self._entities)

    def count(self) -> int:
        return len(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, scheme_code: object) -> bool:
        return scheme_code in self._entities

    # --- Inverted mappings ---

    def has_token(self, token: str) -> bool:
        return token in self._tokens

    def codes_for_token(self, token: str) -> frozenset[int]:
        postings = self._tokens.get(token)
        return frozenset(postings) if postings else _EMPTY

    def codes_for_category(self, name: str) -> Set[int]:
        """Return codes filed under a sub-category or a top-level category.

        Args:
            name: Sub-category (``"Mid Cap"``) or category (``"Equity"``) label.

        Returns:
            Union of every matching bucket; empty for unknown labels.
        """
        name = self._labels.get(fold_label(name), name)
        codes: Set[int] = set(self._categories.get(name, ()))
        for sub_category in self._children.get(name, ()):
            codes.update(self._categories.get(sub_category, ()))
        return codes

    def codes_for_fund_house(self, name: str) -> frozenset[int]:
        houses = self._fund_houses.get(self._labels.get(fold_label(name), name))
        return frozenset(houses) if houses else _EMPTY

    def tokens_with_prefix(self, prefix: str, *, limit: Optional[int] = None) -> List[str]:
        """Return indexed tokens starting with ``prefix`` in lexicographic order."""

        vocabulary = self._vocabulary
        position = bisect_left(vocabulary, prefix)
        matches: List[str] = []
        while position < len(vocabulary) and vocabulary[position].startswith(prefix):
            matches.append(vocabulary[position])
            if limit is not None and len(matches) >= limit:
                break
            position += 1
        return matches

    def tokens_of_length(self, length: int) -> Sequence[str]:
        return self._by_length.get(length, ())

    def token_count(self) -> int:
        return len(self._tokens)

    def sub_category_counts(self) -> Dict[str, int]:
        return {name: len(codes) for name, codes in self._categories.items() if codes}

    def fund_house_counts(self) -> Dict[str, int]:
        return {name: len(codes) for name, codes in self._fund_houses.items() if codes}

    def category_counts(self) -> Dict[str, int]:
        """Count indexed entities per top-level category."""

        return dict(Counter(entity.category for entity in self._entities.values()))

    def fund_houses(self) -> List[str]:
        return sorted(name for name, codes in self._fund_houses.items() if codes)

    def categories(self) -> List[str]:
        """Return the top-level categories that hold at least one entity."""

        return sorted(
            category
            for category, children in self._children.items()
            if any(self._categories.get(child) for child in children)
        )
