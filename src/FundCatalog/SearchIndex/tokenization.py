"""Tokenization utilities shared by the classifier, the index and the query engine."""

from __future__ import annotations

import re
from typing import Iterable, List, Set

__all__ = ("expand_prefixes", "normalize_text", "search_tokens", "tokenize")

_PUNCTUATION = re.compile(r"[^\w\s]")


def normalize_text(text: str) -> str:
    """Lower-case ``text`` and replace punctuation with spaces."""

    return _PUNCTUATION.sub(" ", text.lower())


def tokenize(text: str, *, min_length: int = 2) -> List[str]:
    """Split text into lower-case, punctuation-stripped word tokens.

    Examples:
        >>> tokenize("HDFC Mid-Cap Opportunities Fund - Direct Plan")
        ['hdfc', 'mid', 'cap', 'opportunities', 'fund', 'direct', 'plan']
    """

    return [token for token in normalize_text(text).split() if len(token) >= min_length]


def expand_prefixes(token: str, *, min_length: int = 3, max_length: int = 6) -> List[str]:
    """Return the prefixes of ``token`` with lengths in ``[min_length, max_length]``.

    Tokens shorter than ``min_length`` have no prefixes. A prefix as long as the
    token itself is the token.
    """

    if len(token) < min_length:
        return []
    upper = min(len(token), max_length)
    return [token[:size] for size in range(min_length, upper + 1)]


def search_tokens(
    texts: Iterable[str],
    *,
    min_length: int = 2,
    prefix_min_length: int = 3,
    prefix_max_length: int = 6,
) -> frozenset[str]:
    """Derive the indexed token set for a group of texts.

    Every word token of every text is kept, together with its prefixes.
    """

    tokens: Set[str] = set()
    for text in texts:
        for token in tokenize(text, min_length=min_length):
            tokens.add(token)
            tokens.update(
                expand_prefixes(token, min_length=prefix_min_length, max_length=prefix_max_length)
            )
    return frozenset(tokens)
