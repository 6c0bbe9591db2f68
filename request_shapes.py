"""
Request aggregate shapes

A request's shipment contents exist in two forms:
  - flat: one row per part, each carrying its own trailer number (how
    PartDetail rows are stored)
  - nested: trailer groups, each with its list of parts (how edit forms
    submit them and how the diff engine compares them)

The conversions here are pure; the store resolves trailer numbers to
Trailer rows when persisting.
"""
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from errors import ValidationFailed


PARTS_PER_PALLET = 24
UNKNOWN_TRAILER = "Unknown"
PLANT_PATTERN = re.compile(r"^[a-zA-Z0-9]{4}$")
INTEGER_PATTERN = re.compile(r"^-?[0-9]+$")

SCALAR_FIELDS = ("shipmentNumber", "plant", "palletCount", "routeInfo", "additionalNotes")


@dataclass(frozen=True)
class PartLine:
    part_number: str
    quantity: int


@dataclass
class TrailerGroup:
    trailer_number: str
    parts: List[PartLine] = field(default_factory=list)


@dataclass(frozen=True)
class FlatPart:
    trailer_number: str
    part_number: str
    quantity: int


@dataclass
class RequestState:
    """Everything an edit can change about a request"""
    shipment_number: str
    pallet_count: int
    trailers: List[TrailerGroup] = field(default_factory=list)
    plant: Optional[str] = None
    route_info: Optional[str] = None
    additional_notes: Optional[str] = None

    def scalar(self, name):
        return {
            "shipmentNumber": self.shipment_number,
            "plant": self.plant,
            "palletCount": self.pallet_count,
            "routeInfo": self.route_info,
            "additionalNotes": self.additional_notes,
        }[name]

    @property
    def part_count(self):
        return sum(len(trailer.parts) for trailer in self.trailers)


def flatten(trailers):
    """Nested trailer groups -> flat part rows, trailer-major order"""
    return [
        FlatPart(trailer.trailer_number, part.part_number, part.quantity)
        for trailer in trailers
        for part in trailer.parts
    ]


def group(rows):
    """
    Flat part rows -> nested trailer groups

    Rows may be FlatPart values or PartDetail models (anything with
    part_number, quantity and either trailer_number or a trailer relation).
    Rows without a trailer land in the "Unknown" bucket; that only happens
    when the stored data has lost its trailer link.
    Groups keep first-seen order and duplicate part numbers are kept as is.
    """
    groups = {}
    for row in rows:
        trailer_number = _row_trailer_number(row) or UNKNOWN_TRAILER
        if trailer_number not in groups:
            groups[trailer_number] = TrailerGroup(trailer_number)
        groups[trailer_number].parts.append(PartLine(row.part_number, row.quantity))
    return list(groups.values())


def _row_trailer_number(row):
    if hasattr(row, "trailer_number"):
        return row.trailer_number
    trailer = getattr(row, "trailer", None)
    return trailer.trailer_number if trailer is not None else None


def compute_pallet_count(trailers):
    """Pallets needed: ceil(quantity / 24) summed over every part"""
    return sum(
        math.ceil(part.quantity / PARTS_PER_PALLET)
        for trailer in trailers
        for part in trailer.parts
    )


def state_from_request(request):
    """Snapshot a stored MustGoRequest as a RequestState"""
    return RequestState(
        shipment_number=request.shipment_number,
        plant=request.plant,
        pallet_count=request.pallet_count,
        route_info=request.route_info,
        additional_notes=request.additional_notes,
        trailers=group(request.part_details),
    )


def _clean_text(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and INTEGER_PATTERN.match(value.strip()):
        return int(value.strip())
    return None


def parse_request_payload(data):
    """
    Validate a create/edit payload and build a RequestState

    Expected keys: shipmentNumber, plant, trailers
    ([{trailerNumber, parts: [{partNumber, quantity}]}]), palletCount,
    routeInfo, additionalNotes. palletCount is computed from the parts
    when omitted.

    Raises:
        ValidationFailed: with every field problem found, as one error
    """
    if not isinstance(data, dict):
        raise ValidationFailed.single("body", "Request body must be a JSON object")

    errors = {}

    def fail(name, message):
        errors.setdefault(name, []).append(message)

    shipment_number = _clean_text(data.get("shipmentNumber"))
    if not shipment_number:
        fail("shipmentNumber", "Shipment number is required")

    plant = _clean_text(data.get("plant"))
    if plant is not None and not PLANT_PATTERN.match(plant):
        fail("plant", "Plant must be exactly 4 letters or digits")

    trailers = []
    raw_trailers = data.get("trailers")
    if not isinstance(raw_trailers, list) or not raw_trailers:
        fail("trailers", "At least one trailer with parts is required")
        raw_trailers = []

    seen_trailers = set()
    for t_index, raw_trailer in enumerate(raw_trailers, start=1):
        if not isinstance(raw_trailer, dict):
            fail("trailers", f"Trailer {t_index} is malformed")
            continue
        trailer_number = _clean_text(raw_trailer.get("trailerNumber"))
        if not trailer_number:
            fail("trailers", f"Trailer number is required for trailer {t_index}")
        elif trailer_number in seen_trailers:
            fail("trailers", f"Trailer {trailer_number} is listed more than once")
        seen_trailers.add(trailer_number)

        raw_parts = raw_trailer.get("parts")
        if not isinstance(raw_parts, list) or not raw_parts:
            fail("parts", f"Trailer {trailer_number or t_index} needs at least one part")
            raw_parts = []

        parts = []
        for p_index, raw_part in enumerate(raw_parts, start=1):
            if not isinstance(raw_part, dict):
                fail("parts", f"Part {p_index} of trailer {trailer_number or t_index} is malformed")
                continue
            part_number = _clean_text(raw_part.get("partNumber"))
            quantity = _parse_int(raw_part.get("quantity"))
            if not part_number:
                fail("parts", f"Part number is required for part {p_index} of trailer {trailer_number or t_index}")
            if quantity is None or quantity <= 0:
                fail("parts", f"Valid quantity is required for part {p_index} of trailer {trailer_number or t_index}")
            if part_number and quantity is not None and quantity > 0:
                parts.append(PartLine(part_number, quantity))
        trailers.append(TrailerGroup(trailer_number or "", parts))

    raw_pallets = data.get("palletCount")
    if raw_pallets is None or raw_pallets == "":
        pallet_count = compute_pallet_count(trailers)
        if not errors and pallet_count < 1:
            fail("palletCount", "Pallet count must be at least 1")
    else:
        pallet_count = _parse_int(raw_pallets)
        if pallet_count is None or pallet_count < 1:
            fail("palletCount", "Pallet count must be at least 1")

    if errors:
        raise ValidationFailed(errors)

    return RequestState(
        shipment_number=shipment_number,
        plant=plant,
        pallet_count=pallet_count,
        route_info=_clean_text(data.get("routeInfo")),
        additional_notes=_clean_text(data.get("additionalNotes")),
        trailers=trailers,
    )
