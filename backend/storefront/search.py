"""
Fuzzy product search, suggestions and search analytics.

The catalog search endpoint first runs the plain substring query; this
engine ranks the catalog when that finds nothing, so a misspelled
"saphire" still returns sapphire pieces.
"""

import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, Iterable, List, Optional

MIN_RELEVANCE = 30
MAX_SUGGESTIONS = 100
MAX_ANALYTICS = 10000

FIELD_WEIGHTS = (("name", 0.5), ("description", 0.3), ("category", 0.2))


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def fuzzy_score(query: str, text: str) -> float:
    """
    Score 0-100: exact match 100, substring 75-85 (earlier is better),
    otherwise Levenshtein similarity scaled to at most 70.

    Multi-word text is also compared word by word, so a typo in one word of
    a long product name is not drowned out by the rest of the name.
    """
    query = query.lower()
    text = (text or "").lower()
    if not query or not text:
        return 0.0
    if text == query:
        return 100.0
    position = text.find(query)
    if position >= 0:
        return 85 - (position / len(text)) * 10

    def similarity(candidate: str) -> float:
        longest = max(len(query), len(candidate))
        return 1 - levenshtein(query, candidate) / longest

    best = max([similarity(text)] + [similarity(word) for word in text.split()])
    return max(0.0, best * 70)


@dataclass
class Suggestion:
    query: str
    frequency: int
    result_count: int


@dataclass
class SearchRecord:
    query: str
    result_count: int
    timestamp: datetime
    user_id: Optional[str] = None


@dataclass
class RankedProduct:
    product: object
    relevance: float


class SearchEngine:
    def __init__(self, max_suggestions: int = MAX_SUGGESTIONS, max_analytics: int = MAX_ANALYTICS):
        self.max_suggestions = max_suggestions
        self._suggestions: Dict[str, Suggestion] = {}
        self._analytics: Deque[SearchRecord] = deque(maxlen=max_analytics)
        self._lock = threading.Lock()

    def rank(self, query: str, products: Iterable, min_relevance: float = MIN_RELEVANCE) -> List[RankedProduct]:
        """Score every product against `query`; best first, weak matches dropped."""
        query = query.strip().lower()
        if not query:
            return []

        ranked = []
        for product in products:
            fields = {
                "name": product.name,
                "description": product.description,
                "category": product.category.name if getattr(product, "category", None) else "",
            }
            relevance = sum(fuzzy_score(query, fields[field]) * weight for field, weight in FIELD_WEIGHTS)
            if relevance >= min_relevance:
                ranked.append(RankedProduct(product, relevance))

        ranked.sort(key=lambda r: r.relevance, reverse=True)
        return ranked

    def record(self, query: str, result_count: int, user_id: Optional[str] = None) -> None:
        query = query.strip().lower()
        if not query:
            return
        with self._lock:
            self._analytics.append(SearchRecord(query, result_count, datetime.now(timezone.utc), user_id))

            existing = self._suggestions.get(query)
            if existing is not None:
                existing.frequency += 1
                existing.result_count = result_count
                return

            if len(self._suggestions) >= self.max_suggestions:
                least = min(self._suggestions.values(), key=lambda s: s.frequency)
                del self._suggestions[least.query]
            self._suggestions[query] = Suggestion(query, 1, result_count)

    def suggestions(self, prefix: str, limit: int = 5) -> List[Suggestion]:
        prefix = prefix.strip().lower()
        with self._lock:
            matches = [s for s in self._suggestions.values() if s.query.startswith(prefix) and s.result_count > 0]
        matches.sort(key=lambda s: s.frequency, reverse=True)
        return matches[:limit]

    def top_queries(self, limit: int = 100) -> List[dict]:
        with self._lock:
            counts = Counter(record.query for record in self._analytics)
        return [{"query": q, "count": c} for q, c in counts.most_common(limit)]

    def clear_old_analytics(self, days_old: int = 30) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        with self._lock:
            before = len(self._analytics)
            kept = [record for record in self._analytics if record.timestamp > cutoff]
            self._analytics.clear()
            self._analytics.extend(kept)
            return before - len(kept)

    def stats(self) -> dict:
        return {
            "total_searches": len(self._analytics),
            "unique_queries": len(self._suggestions),
        }
