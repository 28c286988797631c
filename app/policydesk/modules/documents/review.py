"""
Review-cycle classification for the dashboard.

Pure functions of (documents, now); callers pass `now` explicitly.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.policydesk.constants import (
    FILTER_ALL,
    STATUS_OVERDUE,
    TAB_OVERDUE,
    TAB_UPCOMING,
    UPCOMING_REVIEW_MONTHS,
)
from app.policydesk.modules.documents.entities import DashboardStats, Document


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar-month increment; the day is clamped to the target month (Jan 31 + 1 -> Feb 28/29)."""
    total = dt.month - 1 + months
    year = dt.year + total // 12
    month = total % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def review_window_end(now: datetime) -> datetime:
    return add_months(now, UPCOMING_REVIEW_MONTHS)


def is_upcoming(doc: Document, now: datetime) -> bool:
    return now < doc.next_review <= review_window_end(now)


def is_overdue(doc: Document, now: datetime) -> bool:
    # A hand-set Overdue status counts even when next_review is still ahead.
    return doc.next_review < now or doc.status == STATUS_OVERDUE


def compute_stats(documents: Iterable[Document], now: datetime) -> DashboardStats:
    policies = sops = upcoming = overdue = 0
    for doc in documents:
        if doc.type == "Policy":
            policies += 1
        elif doc.type == "SOP":
            sops += 1
        if is_upcoming(doc, now):
            upcoming += 1
        if is_overdue(doc, now):
            overdue += 1
    return DashboardStats(
        total_policies=policies,
        total_sops=sops,
        upcoming_reviews=upcoming,
        overdue_reviews=overdue,
    )


def classify_tab(documents: Iterable[Document], tab: str | None, now: datetime) -> list[Document]:
    if tab == TAB_UPCOMING:
        return [d for d in documents if is_upcoming(d, now)]
    if tab == TAB_OVERDUE:
        return [d for d in documents if is_overdue(d, now)]
    return list(documents)


@dataclass(frozen=True)
class DocumentFilters:
    query: str = ""
    type: str = FILTER_ALL
    department_id: str = FILTER_ALL

    @classmethod
    def from_args(cls, args) -> "DocumentFilters":
        return cls(
            query=(args.get("q") or "").strip(),
            type=(args.get("type") or FILTER_ALL).strip() or FILTER_ALL,
            department_id=(args.get("department") or FILTER_ALL).strip() or FILTER_ALL,
        )


def _is_unset(value: str | None) -> bool:
    return not value or value == FILTER_ALL


def matches(doc: Document, filters: DocumentFilters) -> bool:
    if filters.query:
        needle = filters.query.lower()
        in_name = needle in doc.name.lower()
        in_description = bool(doc.description) and needle in doc.description.lower()  # type: ignore[union-attr]
        if not (in_name or in_description):
            return False
    if not _is_unset(filters.type) and doc.type != filters.type:
        return False
    if not _is_unset(filters.department_id) and doc.department_id != filters.department_id:
        return False
    return True


def filter_documents(documents: Iterable[Document], filters: DocumentFilters) -> list[Document]:
    return [d for d in documents if matches(d, filters)]


def dashboard_documents(
    documents: Iterable[Document],
    filters: DocumentFilters,
    tab: str | None,
    now: datetime,
) -> list[Document]:
    """Search/type/department filters first, then the tab."""
    return classify_tab(filter_documents(documents, filters), tab, now)
