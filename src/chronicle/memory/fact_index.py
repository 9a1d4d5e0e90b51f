import heapq
import logging
from bisect import insort
from itertools import islice, pairwise, takewhile
from typing import Dict, Iterator, List

from src.chronicle.memory.models import FactCategory, StoryFact

logger = logging.getLogger(__name__)


def _sort_key(fact: StoryFact) -> tuple:
    return fact.sort_key


class FactIndex:
    """
    Current facts bucketed by category, each bucket kept sorted by
    (importance desc, turn desc, insertion desc).

    Decay multiplies every fact in a category by the same factor, so bucket
    order survives a tick unless rounding makes two importances equal, in
    which case the bucket is re-sorted. Retrieval is a lazy k-way merge of
    the buckets rather than a sort over every stored fact.
    """

    def __init__(self):
        self._buckets: Dict[FactCategory, List[StoryFact]] = {}

    def add(self, fact: StoryFact) -> None:
        insort(self._buckets.setdefault(fact.category, []), fact, key=_sort_key)

    def remove(self, fact: StoryFact) -> bool:
        bucket = self._buckets.get(fact.category, [])
        for i, existing in enumerate(bucket):
            if existing.id == fact.id:
                del bucket[i]
                return True
        return False

    def decay(self, volatile_rate: float, stable_rate: float) -> None:
        for category, bucket in self._buckets.items():
            factor = 1.0 - (stable_rate if category.is_stable else volatile_rate)
            for fact in bucket:
                fact.importance *= factor
            # Rounding can collapse neighbours onto one importance; newer must win the tie
            if any(a.importance == b.importance for a, b in pairwise(bucket)):
                bucket.sort(key=_sort_key)

    def ranked(self) -> Iterator[StoryFact]:
        """Every indexed fact, best first."""
        return heapq.merge(*self._buckets.values(), key=_sort_key)

    def top(self, n: int, floor: float) -> List[StoryFact]:
        """At most n facts at or above the importance floor, best first."""
        if n <= 0:
            return []
        above_floor = takewhile(lambda fact: fact.importance >= floor, self.ranked())
        return list(islice(above_floor, n))

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())
