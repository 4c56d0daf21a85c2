"""Filtering, free-text search and pagination over the incident collection.

``derive_view`` is a pure function of (collection, filters). It never
mutates its input and returns structurally equal results for equal inputs,
which lets the map synchronizer skip redraws when nothing changed.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from incidentportal.incidents.models import Incident

DEFAULT_PAGE_SIZE = 10


@dataclass(frozen=True)
class FilterState:
    """What the user asked to see."""

    search_term: str = ""
    category_filter: str = ""
    status_filter: str = ""
    author_filter: str = ""
    region_filter: str = ""
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def with_page(self, page: int) -> FilterState:
        """Same filters, another page."""
        return replace(self, page=page)

    def cleared(self) -> FilterState:
        """Drop search and filters, back to page 1."""
        return FilterState(page_size=self.page_size)

    @property
    def is_filtered(self) -> bool:
        """True when any filter or search term is set."""
        return any(
            (
                self.search_term,
                self.category_filter,
                self.status_filter,
                self.author_filter,
                self.region_filter,
            )
        )


@dataclass(frozen=True)
class PageView:
    """One page of matching incidents plus totals."""

    page_items: tuple[Incident, ...]
    total_matching: int
    total_pages: int
    page: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def matches(incident: Incident, filters: FilterState) -> bool:
    """Check an incident against every filter and the search term (all must hold).

    Category and status (an alert's level) match exactly, ignoring case. Author
    and region match as case-insensitive substrings.
    """
    category = filters.category_filter.strip().lower()
    if category and incident.category.lower() != category:
        return False

    status = filters.status_filter.strip().lower()
    if status:
        labels = {incident.status_label.lower()}
        if incident.kind.has_status_workflow:
            labels.add(str(incident.status).lower())
        if status not in labels:
            return False

    for wanted, value in (
        (filters.author_filter, incident.author.name),
        (filters.region_filter, incident.region_name),
    ):
        wanted = wanted.strip().lower()
        if wanted and wanted not in value.lower():
            return False

    term = filters.search_term.strip().lower()
    if term:
        haystacks = (
            str(incident.id),
            incident.title,
            incident.description,
            incident.author.name,
            incident.region_name,
        )
        if not any(term in h.lower() for h in haystacks):
            return False

    return True


def derive_view(incidents: Sequence[Incident], filters: FilterState) -> PageView:
    """Compute the visible page for the given filters.

    Args:
        incidents: Full collection, in display order
        filters: Current filter state

    Returns:
        PageView. A page past the last one (or below 1) is clamped back to
        page 1 so the caller never lands on an empty page while matches exist.
    """
    page_size = max(1, filters.page_size)
    matching = [i for i in incidents if matches(i, filters)]
    total_matching = len(matching)
    total_pages = math.ceil(total_matching / page_size)

    page = filters.page
    if page < 1 or page > total_pages:
        page = 1

    start = (page - 1) * page_size
    return PageView(
        page_items=tuple(matching[start : start + page_size]),
        total_matching=total_matching,
        total_pages=total_pages,
        page=page,
    )


def distinct_values(incidents: Sequence[Incident], attr: str) -> list[str]:
    """Sorted distinct non-empty values of an attribute, for filter dropdowns.

    ``attr`` is an ``Incident`` attribute such as ``category``, ``level`` or
    ``region_name``, or ``author`` for the author name.
    """
    values: set[str] = set()
    for incident in incidents:
        value = incident.author.name if attr == "author" else getattr(incident, attr, "")
        if value:
            values.add(str(value))
    return sorted(values)
