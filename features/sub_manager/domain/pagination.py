from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, TypeVar


T = TypeVar("T")


@dataclass
class Pager:
    """Page cursor over a list whose length changes underneath it."""

    page_size: int
    current: int = 1

    def total_pages(self, count: int) -> int:
        return math.ceil(count / self.page_size)

    def window(self, items: Sequence[T]) -> List[T]:
        start = (self.current - 1) * self.page_size
        return list(items[start:start + self.page_size])

    def change(self, page: int, count: int) -> bool:
        if page < 1 or page > self.total_pages(count):
            return False
        self.current = page
        return True

    def reset(self) -> None:
        self.current = 1

    def clamp(self, count: int) -> None:
        self.current = min(max(1, self.current), max(1, self.total_pages(count)))

    def after_prepend(self, items: Sequence[T]) -> None:
        # a full page means the new head is off-screen
        if len(self.window(items)) >= self.page_size:
            self.current = 1

    def after_remove(self, items: Sequence[T]) -> None:
        if not self.window(items) and self.current > 1:
            self.current -= 1
