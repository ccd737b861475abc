from __future__ import annotations

import math
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, TypeVar

from features.sub_manager.domain.collation import collation_key
from features.sub_manager.domain.regions import REGION_PRIORITY, REGION_RULES, UNCLASSIFIED


T = TypeVar("T")


class RegionClassifier:
    """Maps display names to region codes and orders items geographically.

    Results are memoized per name for the lifetime of the classifier.
    """

    def __init__(
        self,
        rules: Iterable[Tuple[str, Sequence[Pattern[str]]]] = REGION_RULES,
        priority: Sequence[str] = REGION_PRIORITY,
        unclassified: str = UNCLASSIFIED,
    ) -> None:
        self._rules = [(code, tuple(patterns)) for code, patterns in rules]
        self._rank: Dict[str, int] = {code: index for index, code in enumerate(priority)}
        self._unclassified = unclassified
        self._cache: Dict[str, str] = {}

    def classify(self, name: Optional[str]) -> str:
        name = name or ""
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        code = self._unclassified
        for candidate, patterns in self._rules:
            if any(pattern.search(name) for pattern in patterns):
                code = candidate
                break
        self._cache[name] = code
        return code

    def rank(self, code: str) -> float:
        index = self._rank.get(code)
        return math.inf if index is None else index

    def sort_key(self, name: Optional[str]):
        name = name or ""
        return self.rank(self.classify(name)), collation_key(name)

    def sort(self, items: Iterable[T], name_of: Callable[[T], Optional[str]]) -> List[T]:
        return sorted(items, key=lambda item: self.sort_key(name_of(item)))

    def clear(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
