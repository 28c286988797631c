"""
Central constants for the PolicyDesk application.
"""
from __future__ import annotations

DOCUMENT_TYPES = ("Policy", "SOP")

# Draft / Current / Under Review are set by hand; Overdue may also be set by hand
# but is additionally derived from next_review (see review.is_overdue).
DOCUMENT_STATUSES = ("Draft", "Current", "Under Review", "Overdue")
DEFAULT_STATUS = "Draft"
STATUS_OVERDUE = "Overdue"

# Dashboard tabs
TAB_ALL = "all"
TAB_UPCOMING = "upcoming"
TAB_OVERDUE = "overdue"

# Sentinel for "no filter" in search/type/department pickers
FILTER_ALL = "all"

UPCOMING_REVIEW_MONTHS = 3

DEFAULT_DEPARTMENTS = (
    ("Human Resources", "#3B82F6"),
    ("Finance", "#10B981"),
    ("Information Technology", "#8B5CF6"),
    ("Operations", "#F59E0B"),
    ("Quality", "#EF4444"),
    ("Legal", "#6B7280"),
)
