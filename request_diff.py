"""
Request diff / reconciliation

Compares the stored state of a request with a proposed edit and describes
the changes as human-readable audit lines.

Part reconciliation is keyed by (part number, trailer number). When an old
trailer disappears from the edit, each of its parts is looked up by part
number in the new trailers; the first hit is treated as a trailer move
rather than a removal plus an addition. This infers intent from part
numbers alone, so two trailers that legitimately carry the same part
number can be reported as a move.

Message order: moves, then additions/quantity changes (new trailer-major,
part-minor order), then removals (old trailer-major, part-minor order).
"""
from dataclasses import dataclass, field
from typing import List, Optional

from request_shapes import SCALAR_FIELDS


FIELD_CHANGES_PREFIX = "Request details changed: "
PART_CHANGES_PREFIX = "Part changes: "


@dataclass
class RequestDiff:
    field_changes: List[str] = field(default_factory=list)
    part_changes: List[str] = field(default_factory=list)

    @property
    def has_changes(self):
        return bool(self.field_changes or self.part_changes)

    def log_messages(self):
        """One audit line per non-empty block, details first"""
        messages = []
        if self.field_changes:
            messages.append(FIELD_CHANGES_PREFIX + ", ".join(self.field_changes))
        if self.part_changes:
            messages.append(PART_CHANGES_PREFIX + "; ".join(self.part_changes))
        return messages


@dataclass
class _OldPart:
    part_number: str
    trailer_number: str
    quantity: int
    moved_to: Optional[str] = None
    consumed: bool = False

    @property
    def key(self):
        return _key(self.part_number, self.moved_to or self.trailer_number)


def _key(part_number, trailer_number):
    return f"{part_number}-{trailer_number}"


def _is_empty(value):
    return value is None or value == ""


def _display(value):
    return "none" if _is_empty(value) else str(value)


def diff_fields(old, new):
    """Scalar field changes; empty on both sides is not a change"""
    changes = []
    for name in SCALAR_FIELDS:
        before, after = old.scalar(name), new.scalar(name)
        if _is_empty(before) and _is_empty(after):
            continue
        if before != after:
            changes.append(f"{name} from {_display(before)} to {_display(after)}")
    return changes


def _find_trailer_with_part(trailers, part_number):
    for trailer in trailers:
        for part in trailer.parts:
            if part.part_number == part_number:
                return trailer.trailer_number
    return None


def diff_parts(old_trailers, new_trailers):
    """Part/trailer changes between two lists of TrailerGroup"""
    old_parts = [
        _OldPart(part.part_number, trailer.trailer_number, part.quantity)
        for trailer in old_trailers
        for part in trailer.parts
    ]
    new_trailer_numbers = {trailer.trailer_number for trailer in new_trailers}

    moves = []
    for old_part in old_parts:
        if old_part.trailer_number in new_trailer_numbers:
            continue
        target = _find_trailer_with_part(new_trailers, old_part.part_number)
        if target is None:
            continue
        old_part.moved_to = target
        if (old_part.trailer_number, target) not in moves:
            moves.append((old_part.trailer_number, target))

    lookup = {}
    for old_part in old_parts:
        lookup.setdefault(old_part.key, []).append(old_part)

    changes = [f"moved parts from trailer {source} to {target}" for source, target in moves]

    for trailer in new_trailers:
        for part in trailer.parts:
            candidates = lookup.get(_key(part.part_number, trailer.trailer_number), [])
            match = next((c for c in candidates if not c.consumed), None)
            if match is None:
                changes.append(
                    f"updated part {part.part_number} quantity to {part.quantity}"
                    f" in trailer {trailer.trailer_number}"
                )
                continue
            match.consumed = True
            if match.quantity != part.quantity:
                changes.append(
                    f"updated part {part.part_number} quantity from {match.quantity}"
                    f" to {part.quantity} in trailer {trailer.trailer_number}"
                )

    remapped = {source for source, _ in moves}
    for old_part in old_parts:
        if old_part.consumed or old_part.trailer_number in remapped:
            continue
        changes.append(
            f"removed part {old_part.part_number} from trailer {old_part.trailer_number}"
        )

    return changes


def diff_requests(old, new):
    """
    Diff two RequestState values

    Returns:
        RequestDiff; an unchanged edit yields no changes and no log messages
    """
    return RequestDiff(
        field_changes=diff_fields(old, new),
        part_changes=diff_parts(old.trailers, new.trailers),
    )
