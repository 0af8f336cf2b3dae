from __future__ import annotations

import re
from datetime import datetime, timezone
from functools import lru_cache

from pyuca import Collator
from rapidfuzz import fuzz


SEARCH_FIELDS = ("title", "url", "description", "note", "site_name", "domain")

# Scores are on a 0-100 scale.
MATCH_THRESHOLD = 70.0
TOKEN_MATCH_CUTOFF = 80.0
TOKEN_PARTIAL_WEIGHT = 0.9
TOKEN_WEIGHT = 0.60
PHRASE_WEIGHT = 0.25
ORDER_WEIGHT = 0.15

TIMESTAMP_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "lastVisitedAt": "last_visited_at",
}
TEXT_SORT_FIELDS = {"domain": "domain", "title": "title"}

_TOKEN_RE = re.compile(r"\w+")


def _safe(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _tokens(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _token_similarity(token: str, candidate: str) -> float:
    exact = fuzz.ratio(token, candidate)
    if len(token) < 2 or exact == 100:
        return exact
    return max(exact, fuzz.partial_ratio(token, candidate) * TOKEN_PARTIAL_WEIGHT)


def score_field(query: str, text: str) -> float:
    """Score one field against the query.

    Blends how well each query token is found, whether the found tokens keep
    the query's order, and how close the query is to a contiguous phrase.
    """
    query_tokens = _tokens(query)
    field_tokens = _tokens(text)
    if not query_tokens or not field_tokens:
        return 0.0

    token_scores: list[float] = []
    positions: list[int | None] = []
    previous = -1
    for token in query_tokens:
        best, best_pos = 0.0, None
        for pos, candidate in enumerate(field_tokens):
            similarity = _token_similarity(token, candidate)
            # On a tie prefer a position after the previous match.
            if similarity > best or (
                similarity == best
                and best_pos is not None
                and best_pos <= previous < pos
            ):
                best, best_pos = similarity, pos
        token_scores.append(best)
        matched = best >= TOKEN_MATCH_CUTOFF
        positions.append(best_pos if matched else None)
        if matched:
            previous = best_pos

    token_score = sum(token_scores) / len(token_scores)

    if len(positions) == 1:
        order_score = 100.0 if positions[0] is not None else 0.0
    else:
        in_order = sum(
            1
            for left, right in zip(positions, positions[1:])
            if left is not None and right is not None and left < right
        )
        order_score = 100.0 * in_order / (len(positions) - 1)

    phrase_score = fuzz.partial_ratio(" ".join(query_tokens), text.lower())

    return (
        TOKEN_WEIGHT * token_score
        + PHRASE_WEIGHT * phrase_score
        + ORDER_WEIGHT * order_score
    )


def score_link(link, query: str) -> float:
    best = 0.0
    for field in SEARCH_FIELDS:
        text = _safe(getattr(link, field, None))
        if text:
            best = max(best, score_field(query, text))
    return best


def search_links(links, query: str | None) -> list:
    """Return the links matching ``query``, best match first.

    A blank query returns every link in its original order.
    """
    if not query or not query.strip():
        return list(links)

    ranked = []
    for index, link in enumerate(links):
        score = score_link(link, query)
        if score >= MATCH_THRESHOLD:
            ranked.append((score, index, link))

    ranked.sort(key=lambda item: (-item[0], item[1]))
    return [link for _, _, link in ranked]


def _timestamp(value: datetime | None) -> float:
    if value is None:
        return float("-inf")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Loads the Unicode collation table once.
    return Collator()


def _collation_key(value) -> tuple:
    return _collator().sort_key(_safe(value).casefold())


def sort_links(links, sort_field: str = "createdAt") -> list:
    """Sort links by ``sort_field``, newest or last in collation order first."""
    if sort_field in TIMESTAMP_SORT_FIELDS:
        attr = TIMESTAMP_SORT_FIELDS[sort_field]
        key = lambda link: _timestamp(getattr(link, attr, None))  # noqa: E731
    elif sort_field in TEXT_SORT_FIELDS:
        attr = TEXT_SORT_FIELDS[sort_field]
        key = lambda link: _collation_key(getattr(link, attr, None))  # noqa: E731
    else:
        raise ValueError(f"unknown sort field: {sort_field}")
    return sorted(links, key=key, reverse=True)


def search_and_sort(links, query: str | None, sort_field: str = "createdAt") -> list:
    return sort_links(search_links(links, query), sort_field)
