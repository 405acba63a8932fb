"""
Search and sort helpers over index entries.

Queries support a single boolean operator: "sword AND medieval" requires
every term to match, "sword OR dragon" requires at least one. When both
appear, AND wins and the query is split on AND only.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from model_library.domain.models import ModelIndexEntry
from model_library.domain.semver import SemVer

_AND = re.compile(r" AND ", flags=re.IGNORECASE)
_OR = re.compile(r" OR ", flags=re.IGNORECASE)


class SortMode(str, Enum):
    NAME = "name"
    DATE = "date"
    VERSION = "version"


def entry_matches_term(entry: ModelIndexEntry, term: Optional[str]) -> bool:
    """
    Case-insensitive substring match against name, description or any tag.
    """
    if not term:
        return False
    needle = term.casefold()

    if entry.name and needle in entry.name.casefold():
        return True
    if entry.description and needle in entry.description.casefold():
        return True
    return any(tag and needle in tag.casefold() for tag in entry.tags)


def entry_matches_advanced_search(entry: ModelIndexEntry, query: Optional[str]) -> bool:
    if entry is None or not query:
        return False

    query = query.strip()

    if _AND.search(query):
        terms = [t.strip() for t in _AND.split(query) if t.strip()]
        return all(entry_matches_term(entry, t) for t in terms)

    if _OR.search(query):
        terms = [t.strip() for t in _OR.split(query) if t.strip()]
        return any(entry_matches_term(entry, t) for t in terms)

    return entry_matches_term(entry, query)


def _version_key(entry: ModelIndexEntry) -> SemVer:
    return SemVer.try_parse(entry.latest_version) or SemVer(0, 0, 0)


def sort_entries(entries: Iterable[ModelIndexEntry], mode: SortMode) -> List[ModelIndexEntry]:
    """
    Return a new, stably sorted list of entries.

    NAME sorts case-insensitively ascending, DATE by updated time newest
    first, VERSION by latest version newest first with unparseable versions
    (treated as 0.0.0) after every valid one.
    """
    items = list(entries)
    if mode == SortMode.NAME:
        return sorted(items, key=lambda e: (e.name or "").casefold())
    if mode == SortMode.DATE:
        return sorted(items, key=lambda e: e.updated_time, reverse=True)
    if mode == SortMode.VERSION:
        # A valid 0.0.0 still sorts ahead of an unparseable version.
        return sorted(
            items,
            key=lambda e: (SemVer.try_parse(e.latest_version) is not None, _version_key(e)),
            reverse=True,
        )
    return items


def filter_entries(
    entries: Iterable[ModelIndexEntry],
    query: Optional[str] = None,
    required_tags: Sequence[str] = (),
) -> List[ModelIndexEntry]:
    """
    Keep entries matching the query (if any) and carrying every required tag
    (compared case-insensitively).
    """
    wanted = {t.casefold() for t in required_tags if t}
    result: List[ModelIndexEntry] = []
    for entry in entries:
        if query and query.strip() and not entry_matches_advanced_search(entry, query):
            continue
        if wanted and not wanted.issubset({t.casefold() for t in entry.tags if t}):
            continue
        result.append(entry)
    return result


def collect_tags(entries: Iterable[ModelIndexEntry]) -> List[str]:
    """Distinct tags across entries, sorted case-insensitively."""
    seen = {}
    for entry in entries:
        for tag in entry.tags:
            if tag and tag.casefold() not in seen:
                seen[tag.casefold()] = tag
    return sorted(seen.values(), key=str.casefold)
