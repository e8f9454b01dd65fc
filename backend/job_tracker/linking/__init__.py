"""Thread and company linking of inbound emails to applications."""

from job_tracker.linking.resolver import (
    LinkResult,
    resolve_by_existing_link,
    resolve_by_recent_company,
    resolve_by_thread,
)
from job_tracker.linking.transitions import record_status_change, to_status

__all__ = [
    "LinkResult",
    "resolve_by_existing_link",
    "resolve_by_recent_company",
    "resolve_by_thread",
    "record_status_change",
    "to_status",
]
