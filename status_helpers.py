"""
Status helper module for must-go requests
Centralizes how a request's status is presented so the list, detail and
report payloads agree.
"""
from dataclasses import dataclass, asdict
from typing import Optional

from role_policy import RequestStatus


@dataclass
class StatusDisplay:
    """
    Display information for a request status

    Attributes:
        label: Display text for the status (e.g., "In Progress")
        badge_class: CSS class for the badge (e.g., "text-bg-primary")
        detail_text: Optional extra context (e.g., "Deleted by an admin")
    """
    label: str
    badge_class: str
    detail_text: Optional[str] = None

    def to_dict(self):
        return asdict(self)


_STATUS_DISPLAY = {
    RequestStatus.PENDING: StatusDisplay(
        label="Pending",
        badge_class="text-bg-warning",
        detail_text="Awaiting warehouse pickup",
    ),
    RequestStatus.IN_PROGRESS: StatusDisplay(
        label="In Progress",
        badge_class="text-bg-primary",
        detail_text="Being worked by the warehouse",
    ),
    RequestStatus.COMPLETED: StatusDisplay(
        label="Completed",
        badge_class="text-bg-success",
    ),
}


def get_status_display(status, deleted=False):
    """
    Determine the display status for a request

    Args:
        status: RequestStatus or its string value
        deleted: whether the request is soft-deleted

    Returns:
        StatusDisplay
    """
    if deleted:
        return StatusDisplay(
            label="Deleted",
            badge_class="text-bg-secondary",
            detail_text="Restorable by an admin",
        )
    return _STATUS_DISPLAY[RequestStatus(status)]
