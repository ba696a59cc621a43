"""Extract two product names from a free-text comparison query."""

import re
from typing import Optional, Pattern, Sequence, Tuple

ProductPair = Tuple[str, str]

_TRAILING_PUNCTUATION = " \t\r\n?!.,;:"


class PairMatcher:
    """
    One extraction rule. Subclasses set ``pattern`` with two capture groups.

    ``match`` returns the trimmed captures only when both are non-empty, so a
    rule that matches the text but yields an empty side counts as no match.
    """

    name: str = "base"
    pattern: Pattern[str]

    def match(self, text: str) -> Optional[ProductPair]:
        found = self.pattern.search(text)
        if not found:
            return None
        first = found.group(1).strip()
        second = found.group(2).strip().rstrip(_TRAILING_PUNCTUATION)
        if not first or not second:
            return None
        return first, second

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name='{self.name}')>"


class CompareMatcher(PairMatcher):
    """"compare A vs|versus|and|with|to B"."""

    name = "compare"
    pattern = re.compile(
        r"\bcompare\s+(.+?)\s+(?:vs\.?|versus|and|with|to)\s+(.+)",
        re.IGNORECASE | re.DOTALL,
    )


class VersusMatcher(PairMatcher):
    """"A vs B" / "A versus B"."""

    name = "versus"
    pattern = re.compile(r"(.+?)\s+(?:vs\.?|versus)\s+(.+)", re.IGNORECASE | re.DOTALL)


class DisjunctionMatcher(PairMatcher):
    """"A or B". Tried last: "or" shows up in plenty of queries that are not comparisons."""

    name = "or"
    pattern = re.compile(r"(.+?)\s+or\s+(.+)", re.IGNORECASE | re.DOTALL)


DEFAULT_MATCHERS: Tuple[PairMatcher, ...] = (
    CompareMatcher(),
    VersusMatcher(),
    DisjunctionMatcher(),
)


class QuerySplitter:
    """Applies matchers in priority order and returns the first pair found."""

    def __init__(self, matchers: Sequence[PairMatcher] = DEFAULT_MATCHERS):
        self.matchers = tuple(matchers)

    def split(self, text: str) -> Optional[ProductPair]:
        if not text or not text.strip():
            return None
        for matcher in self.matchers:
            pair = matcher.match(text)
            if pair is not None:
                return pair
        return None


_default_splitter = QuerySplitter()


def split_query(text: str) -> Optional[ProductPair]:
    """Return ``(product1, product2)`` or None when no rule yields two names."""
    return _default_splitter.split(text)
