"""Helpers for merging and pruning grounding citations."""

from __future__ import annotations

import re
from typing import Iterable

from app.schemas.analysis import Citation

MAX_RELEVANT_CITATIONS = 5

_IRRELEVANT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        # Search engines and list pages
        r"^https?://(www\.)?google\.",
        r"^https?://(www\.)?bing\.",
        r"^https?://(www\.)?yahoo\.",
        r"^https?://(www\.)?search\.",
        r"^https?://(www\.)?wikipedia\.org/wiki/List_of",
        # Social posts
        r"facebook\.com/.*/posts/",
        r"twitter\.com/.*/status/",
        r"instagram\.com/p/",
        r"tiktok\.com/@",
        r"pinterest\.com/pin/",
        r"reddit\.com/r/.*/comments/",
        # Bare database entries
        r"/movies/\d+/?$",
        r"/title/tt\d+/?$",
        # Shopping
        r"amazon\.com/.*/dp/",
        r"ebay\.com/itm/",
        r"walmart\.com/ip/",
        # Aggregators and listing pages
        r"news\.google\.com",
        r"news\.yahoo\.com",
        r"/search\?",
        r"/results\?",
        r"/category/",
        r"/tag/",
        r"/archive/",
    )
)

_RELEVANT_KEYWORDS: tuple[str, ...] = (
    "imdb",
    "rottentomatoes",
    "metacritic",
    "boxofficemojo",
    "variety",
    "hollywood",
    "entertainment",
    "film",
    "movie",
    "cinema",
    "review",
    "critic",
    "analysis",
    "interview",
    "behind",
    "scenes",
    "production",
    "director",
    "actor",
    "actress",
    "cast",
    "crew",
    "budget",
    "box office",
    "awards",
    "festival",
    "premiere",
)


def merge_citations(*groups: Iterable[Citation]) -> list[Citation]:
    """Union citation lists by URI, keeping the first title seen for each."""
    merged: dict[str, Citation] = {}
    for group in groups:
        for citation in group:
            merged.setdefault(citation.uri, citation)
    return list(merged.values())


def filter_relevant_citations(
    citations: Iterable[Citation],
    limit: int = MAX_RELEVANT_CITATIONS,
) -> list[Citation]:
    relevant: list[Citation] = []
    for citation in citations:
        url = citation.uri.lower()
        title = (citation.title or "").lower()
        if any(pattern.search(url) for pattern in _IRRELEVANT_PATTERNS):
            continue
        if any(keyword in url or keyword in title for keyword in _RELEVANT_KEYWORDS):
            relevant.append(citation)
        if len(relevant) >= limit:
            break
    return relevant


__all__ = ["MAX_RELEVANT_CITATIONS", "filter_relevant_citations", "merge_citations"]
