"""Keyword-overlap ranking of catalogue entries for "suggested next APIs"."""

from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .models import CatalogueEntry, WorkspaceNode

NAME_WEIGHT = 3
DESCRIPTION_WEIGHT = 2
CATEGORY_WEIGHT = 1
SAME_CATEGORY_BONUS = 2
COMPLEMENTARY_BONUS = 1
DEFAULT_LIMIT = 5

# active category -> categories that pair well with it
COMPLEMENTARY_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Cryptocurrency": ("Finance", "Business"),
    "Weather": ("Transportation", "Travel"),
    "News": ("Social", "Data"),
    "Transportation": ("Maps", "Weather", "Location"),
    "Calendar": ("Events", "Social"),
}


@dataclass(frozen=True)
class ScoredEntry:
    entry: CatalogueEntry
    score: int


def keywords_of(text: str) -> list[str]:
    return [k for k in text.lower().split() if k]


def score_entry(
    entry: CatalogueEntry,
    keywords: Sequence[str],
    active_categories: Iterable[str] = (),
) -> int:
    """Token-overlap score plus category-affinity bonuses."""
    name = entry.name.lower()
    description = entry.description.lower()
    category = entry.category.lower()

    score = 0
    for keyword in keywords:
        if keyword in name:
            score += NAME_WEIGHT
        if keyword in description:
            score += DESCRIPTION_WEIGHT
        if keyword in category:
            score += CATEGORY_WEIGHT

    active = set(active_categories)
    if entry.category in active:
        score += SAME_CATEGORY_BONUS
    for active_category in active:
        if entry.category in COMPLEMENTARY_CATEGORIES.get(active_category, ()):
            score += COMPLEMENTARY_BONUS
    return score


def rank_suggestions(
    text: str,
    entries: Iterable[CatalogueEntry],
    active_nodes: Sequence[WorkspaceNode] = (),
    *,
    limit: int = DEFAULT_LIMIT,
    jitter: float = 0.0,
    rng: random.Random | None = None,
) -> list[ScoredEntry]:
    """Top *limit* entries with a positive score, best first.

    Entries already in the workspace are never suggested.  A non-zero
    *jitter* perturbs the ordering (not the reported score) by up to that
    amount so repeated queries surface different near-ties.
    """
    keywords = keywords_of(text)
    active_names = {n.name for n in active_nodes}
    active_categories = {n.category for n in active_nodes if n.category}
    rand = rng or random.Random()

    scored: list[tuple[float, int, ScoredEntry]] = []
    for position, entry in enumerate(entries):
        if entry.name in active_names:
            continue
        score = score_entry(entry, keywords, active_categories)
        if score <= 0:
            continue
        sort_key = score + (rand.uniform(0, jitter) if jitter > 0 else 0.0)
        scored.append((sort_key, position, ScoredEntry(entry=entry, score=score)))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [item[2] for item in scored[:max(0, limit)]]


def find_relevant(
    text: str,
    entries: Iterable[CatalogueEntry],
    active_nodes: Sequence[WorkspaceNode] = (),
    *,
    limit: int = DEFAULT_LIMIT,
    jitter: float = 0.0,
    rng: random.Random | None = None,
) -> list[CatalogueEntry]:
    return [
        s.entry
        for s in rank_suggestions(text, entries, active_nodes, limit=limit, jitter=jitter, rng=rng)
    ]
