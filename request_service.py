"""
Request lifecycle for MG Trako

    PENDING -> IN_PROGRESS -> COMPLETED, plus an orthogonal soft-delete flag.

Every operation takes the acting user explicitly, authorizes through
role_policy, and performs its writes (including the audit log rows) in a
single transaction.
"""
import logging

import store
from date_utils import utcnow
from errors import AuthorizationDenied, NotFound, ValidationFailed
from request_diff import diff_requests
from request_shapes import parse_request_payload, state_from_request
from role_policy import (
    can_create_request,
    can_delete_request,
    can_edit_request,
    can_update_status,
    can_view_deleted,
    is_approved,
    parse_status,
)

logger = logging.getLogger(__name__)

DELETED_LOG = "Request marked as deleted"
RESTORED_LOG = "Request restored from deleted state"


def creation_log_message(part_count):
    return f"Request created with {part_count} part number(s)"


def status_log_message(status=None, note=None):
    """One audit line for a status change and/or a note; status leads"""
    if status is not None and note:
        return f"Status updated to {status.value} with note: {note}"
    if status is not None:
        return f"Status updated to {status.value}"
    return f"Note added: {note}"


def _deny(actor, action, message):
    logger.warning("User %s (%s) denied: %s", actor.id, actor.role.value, action)
    raise AuthorizationDenied(message)


def _require_approved(actor):
    if not is_approved(actor):
        _deny(actor, "pending account", "Account pending approval")


def _load(request_id):
    request = store.find_request(request_id)
    if request is None:
        raise NotFound("Request", request_id)
    return request


def present(actor, request, include_logs=True):
    """Serialize a request for the given caller, including canEdit"""
    return request.to_dict(can_edit=can_edit_request(actor, request), include_logs=include_logs)


def create_request(actor, payload):
    """
    Create a request from a create-form payload

    Only customer service and admins may create. palletCount is derived
    from the parts when the payload leaves it out.

    Returns:
        MustGoRequest aggregate
    """
    if not can_create_request(actor):
        _deny(actor, "create request", "Unauthorized: Customer service access required")

    state = parse_request_payload(payload)
    request = store.create_request_transaction(
        state, actor.id, creation_log_message(state.part_count)
    )
    logger.info("Request %s created by user %s", request.id, actor.id)
    return request


def get_request(actor, request_id):
    _require_approved(actor)
    request = _load(request_id)
    if request.deleted and not can_view_deleted(actor):
        raise NotFound("Request", request_id)
    return request


def list_requests(actor, status=None, search=None, mine=False, include_deleted=False):
    _require_approved(actor)

    parsed_status = None
    if status:
        parsed_status = parse_status(status)
        if parsed_status is None:
            raise ValidationFailed.single("status", "Invalid status specified")

    if include_deleted and not can_view_deleted(actor):
        _deny(actor, "list deleted requests", "Only admins can view deleted requests")

    return store.list_requests(
        status=parsed_status,
        search_text=search,
        created_by=actor.id if mine else None,
        include_deleted=include_deleted,
    )


def update_status(actor, request_id, status=None, note=None):
    """
    Warehouse update: change the status, append a note, or both

    The note is appended to the request's notes list, never replacing
    earlier ones. A single log line describes the whole update.
    """
    request = _load(request_id)
    if not can_update_status(actor, request):
        _deny(actor, f"update status of request {request_id}",
              "Unauthorized: Warehouse access required for active requests")

    errors = {}
    if status is not None and not isinstance(status, str):
        errors["status"] = ["Status must be a string"]
    if note is not None and not isinstance(note, str):
        errors["note"] = ["Note must be a string"]
    if errors:
        raise ValidationFailed(errors)

    new_status = None
    if status not in (None, ""):
        new_status = parse_status(status)
        if new_status is None:
            raise ValidationFailed.single("status", "Invalid status specified")
        if new_status == request.status:
            new_status = None

    note = (note or "").strip() or None
    if new_status is None and note is None:
        raise ValidationFailed.single("status", "Provide a new status or a note")

    with store.atomic():
        if new_status is not None:
            request.status = new_status
        if note is not None:
            request.notes = list(request.notes or []) + [note]
        request.updated_at = utcnow()
        store.append_log(request.id, status_log_message(new_status, note), actor.id)

    logger.info("Request %s updated by user %s", request_id, actor.id)
    return _load(request_id)


def edit_request(actor, request_id, payload):
    """
    Replace a request's details and contents, logging what changed

    The previous and proposed states are diffed before the write; each
    non-empty block of changes becomes its own log row.
    """
    request = _load(request_id)
    if request.deleted and not can_view_deleted(actor):
        raise NotFound("Request", request_id)
    if not can_edit_request(actor, request):
        _deny(actor, f"edit request {request_id}", "You don't have permission to edit this request")

    new_state = parse_request_payload(payload)
    diff = diff_requests(state_from_request(request), new_state)

    request = store.edit_request_transaction(
        request_id, new_state, actor.id, diff.log_messages()
    )
    logger.info("Request %s edited by user %s (%d change blocks)",
                request_id, actor.id, len(diff.log_messages()))
    return request


def soft_delete_request(actor, request_id):
    if not can_delete_request(actor):
        _deny(actor, f"delete request {request_id}", "Only admins can delete requests")

    request = _load(request_id)
    if request.deleted:
        raise ValidationFailed.single("deleted", "Request is already deleted")

    with store.atomic():
        request.deleted = True
        request.deleted_at = utcnow()
        store.append_log(request.id, DELETED_LOG, actor.id)

    logger.info("Request %s deleted by user %s", request_id, actor.id)
    return _load(request_id)


def restore_request(actor, request_id):
    if not can_delete_request(actor):
        _deny(actor, f"restore request {request_id}", "Only admins can undelete requests")

    request = _load(request_id)
    if not request.deleted:
        raise ValidationFailed.single("deleted", "Request is not deleted")

    with store.atomic():
        request.deleted = False
        request.deleted_at = None
        store.append_log(request.id, RESTORED_LOG, actor.id)

    logger.info("Request %s restored by user %s", request_id, actor.id)
    return _load(request_id)
