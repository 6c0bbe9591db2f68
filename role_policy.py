"""
Role policy for MG Trako
Pure capability checks over an (id, role) pair; callers turn a False into
an AuthorizationDenied at the route/service boundary.
"""
from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    CUSTOMER_SERVICE = "CUSTOMER_SERVICE"
    WAREHOUSE = "WAREHOUSE"
    REPORT_RUNNER = "REPORT_RUNNER"
    PENDING = "PENDING"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Actor:
    """The authenticated user an operation is performed on behalf of"""
    id: int
    role: Role

    @classmethod
    def from_user(cls, user):
        return cls(id=user.id, role=Role(user.role))


def parse_role(value):
    """Return the Role for a string, or None if it isn't one"""
    try:
        return Role(value)
    except ValueError:
        return None


def parse_status(value):
    """Return the RequestStatus for a string, or None if it isn't one"""
    try:
        return RequestStatus(value)
    except ValueError:
        return None


def is_admin(actor):
    return actor.role == Role.ADMIN


def is_warehouse(actor):
    return actor.role == Role.WAREHOUSE or is_admin(actor)


def is_customer_service(actor):
    return actor.role == Role.CUSTOMER_SERVICE or is_admin(actor)


def is_approved(actor):
    # PENDING accounts are registered but not yet promoted by an admin
    return actor.role != Role.PENDING


def can_create_request(actor):
    return is_customer_service(actor)


def can_edit_request(actor, request):
    """
    Admins and warehouse staff can edit any request; customer service only
    the requests they created.

    Args:
        actor: Actor
        request: anything with a created_by_id attribute
    """
    if is_admin(actor) or is_warehouse(actor):
        return True
    return is_customer_service(actor) and request.created_by_id == actor.id


def can_update_status(actor, request):
    return is_warehouse(actor) and not request.deleted


def can_delete_request(actor):
    return is_admin(actor)


def can_view_deleted(actor):
    return is_admin(actor)


def can_manage_users(actor):
    return is_admin(actor)


def can_view_reports(actor):
    return actor.role in (Role.ADMIN, Role.REPORT_RUNNER)


def can_manage_parts(actor):
    """Catalog edits follow request creation rights"""
    return can_create_request(actor)
