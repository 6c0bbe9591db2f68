"""
Parts catalog: descriptive data (description, weight, dimensions) for part
numbers. Request lines carry plain part numbers; the catalog is looked up
by number and a catalog entry cannot be deleted while a request uses it.
"""
import logging
import math

import store
from errors import AuthorizationDenied, NotFound, ValidationFailed
from models import PartInfo
from role_policy import can_manage_parts, is_approved

logger = logging.getLogger(__name__)

IN_USE_MESSAGE = "Cannot delete part: It is referenced by existing MustGo requests"

# JSON key -> PartInfo column for the optional catalog fields
OPTIONAL_FIELDS = {
    "description": "description",
    "weight": "weight",
    "dimensions": "dimensions",
}


def _require_approved(actor):
    if not is_approved(actor):
        raise AuthorizationDenied("Account pending approval")


def _require_manager(actor, action):
    if not can_manage_parts(actor):
        logger.warning("User %s (%s) denied: %s", actor.id, actor.role.value, action)
        raise AuthorizationDenied("Unauthorized: Customer service access required")


def _text(value, name, errors):
    if value is None:
        return None
    if not isinstance(value, str):
        errors.setdefault(name, []).append(f"{name} must be text")
        return None
    return value.strip() or None


def _weight(value, errors):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.setdefault("weight", []).append("Weight must be a number")
        return None
    try:
        weight = float(value)
    except (TypeError, ValueError):
        errors.setdefault("weight", []).append("Weight must be a number")
        return None
    if not math.isfinite(weight) or weight < 0:
        errors.setdefault("weight", []).append("Weight must be a non-negative number")
        return None
    return weight


def parse_part_payload(data, partial=False):
    """
    Column values for a catalog payload

    With partial=True only the optional keys present in the payload are
    returned, so an update leaves the other columns as they are.
    """
    if not isinstance(data, dict):
        raise ValidationFailed.single("body", "Request body must be a JSON object")

    errors = {}
    values = {"part_number": _text(data.get("partNumber"), "partNumber", errors)}
    for key, column in OPTIONAL_FIELDS.items():
        if partial and key not in data:
            continue
        if key == "weight":
            values[column] = _weight(data.get(key), errors)
        else:
            values[column] = _text(data.get(key), key, errors)

    if errors:
        raise ValidationFailed(errors)
    return values


def list_parts(actor, search=None):
    _require_approved(actor)
    return store.list_parts(search)


def get_part(actor, part_id):
    _require_approved(actor)
    part = store.find_part(part_id)
    if part is None:
        raise NotFound("Part", part_id)
    return part


def create_part(actor, data):
    _require_manager(actor, "create part")
    values = parse_part_payload(data)
    if not values["part_number"]:
        raise ValidationFailed.single("partNumber", "Part number is required")
    if store.find_part_by_number(values["part_number"]):
        raise ValidationFailed.single("partNumber", "Part number already exists")

    part = store.save_part(PartInfo(), **values)
    logger.info("Part %s (%s) created by user %s", part.id, part.part_number, actor.id)
    return part


def update_part(actor, data):
    """Update a catalog entry identified by the payload's id"""
    _require_manager(actor, "update part")
    values = parse_part_payload(data, partial=True)

    part_id = data.get("id")
    if not part_id or not values["part_number"]:
        raise ValidationFailed.single("id", "Part ID and part number are required")
    try:
        part_id = int(part_id)
    except (TypeError, ValueError):
        raise ValidationFailed.single("id", "Invalid part ID")

    if store.find_part_by_number(values["part_number"], exclude_id=part_id):
        raise ValidationFailed.single("partNumber", "Part number already exists")

    part = store.find_part(part_id)
    if part is None:
        raise NotFound("Part", part_id)

    part = store.save_part(part, **values)
    logger.info("Part %s updated by user %s", part.id, actor.id)
    return part


def delete_part(actor, part_id):
    _require_manager(actor, "delete part")
    part = store.find_part(part_id)
    if part is None:
        raise NotFound("Part", part_id)
    if store.part_in_use(part.part_number):
        raise ValidationFailed.single("partNumber", IN_USE_MESSAGE)

    part_number = part.part_number
    store.delete_part(part)
    logger.info("Part %s (%s) deleted by user %s", part_id, part_number, actor.id)
