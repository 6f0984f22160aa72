"""Keyword-overlap relevance scoring.

relevance = matched query keywords / all query keywords, where a query
keyword matches when it is a substring of, or contains, any stored keyword.
A query with no keywords scores every candidate 1.0.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from mnemo.models import Memory, SearchResult


def relevance(query_keywords: Sequence[str], memory_keywords: Iterable[str]) -> float:
    if not query_keywords:
        return 1.0
    stored = list(memory_keywords)
    matches = sum(
        1 for qk in query_keywords if any(mk in qk or qk in mk for mk in stored)
    )
    return matches / len(query_keywords)


def rank(
    candidates: Iterable[Memory],
    query_keywords: Sequence[str],
    limit: int,
) -> list[SearchResult]:
    """Score, filter and order candidates.

    Order: relevance x importance descending, then newest first.
    """
    results = [
        SearchResult(memory=m, relevance=relevance(query_keywords, m.metadata.keywords))
        for m in candidates
    ]
    if query_keywords:
        results = [r for r in results if r.relevance > 0]
    results.sort(key=lambda r: (r.score, r.memory.created_at), reverse=True)
    return results[:limit]


def merge_partitions(
    per_project: Iterable[Sequence[SearchResult]],
    limit: int,
) -> list[SearchResult]:
    """Concatenate per-partition results and re-sort by importance only."""
    merged = [result for results in per_project for result in results]
    merged.sort(key=lambda r: r.memory.importance, reverse=True)
    return merged[:limit]
