"""
Bulk request upload
Reads the plant's must-go spreadsheet (xlsx or csv) or text pasted
straight out of it, groups the part lines into requests by the chosen
split criterion and creates each request in its own transaction. A bad
row is reported and skipped; it never aborts the batch.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import List
from urllib.parse import unquote

import pandas as pd

import request_service
from errors import AuthorizationDenied, PersistenceFailure, ValidationFailed
from role_policy import can_create_request

logger = logging.getLogger(__name__)

SPLIT_CRITERIA = ("shipment", "trailer", "route", "part")

# Spreadsheet headers
COL_SHIPMENT = "SHIPMENT"
COL_PLANT = "PLANT"
COL_TRAILER = "1ST truck #"
COL_ROUTE = "INSTRUCTIONS"
COL_PART = "DELPHI P/N"
COL_QTY = "MG QTY"
COL_QTY_FALLBACK = "qty"

# Positional columns of pasted text (the header line is skipped)
RAW_TEXT_COLUMNS = [
    "shipment", "delivery", "plant", "customer_pn", "part_number",
    "mg_qty", "instructions", "trailer_number", "qty",
]


@dataclass
class BulkPart:
    part_number: str
    quantity: int
    trailer_number: str


@dataclass
class BulkRow:
    """One request-to-be, built from one or more spreadsheet lines"""
    shipment_number: str
    plant: str
    route_info: str
    parts: List[BulkPart] = field(default_factory=list)


@dataclass
class BulkResult:
    total_rows: int
    successful_rows: int = 0
    failed_rows: int = 0
    errors: list = field(default_factory=list)
    created_ids: list = field(default_factory=list)

    @property
    def success(self):
        return self.failed_rows == 0

    def fail(self, row, messages):
        self.failed_rows += 1
        self.errors.append({"row": row, "errors": list(messages)})

    def to_dict(self):
        return {
            "success": self.success,
            "totalRows": self.total_rows,
            "successfulRows": self.successful_rows,
            "failedRows": self.failed_rows,
            "errors": self.errors,
            "createdIds": self.created_ids,
        }


def _clean_frame(frame):
    frame = frame.fillna("")
    frame.columns = [str(column).strip() for column in frame.columns]
    return frame.apply(lambda column: column.astype(str).str.strip())


def read_spreadsheet(stream, filename=None):
    """
    Records from an uploaded workbook (first sheet) or csv file

    Returns:
        list of dicts keyed by the spreadsheet headers
    """
    data = stream.read() if hasattr(stream, "read") else stream
    try:
        if (filename or "").lower().endswith(".csv"):
            frame = pd.read_csv(io.BytesIO(data), dtype=str)
        else:
            frame = pd.read_excel(io.BytesIO(data), dtype=str)
    except Exception as e:  # corrupt or unsupported workbooks raise assorted errors
        raise ValidationFailed.single("file", f"Could not read spreadsheet: {e}")
    return _clean_frame(frame).to_dict(orient="records")


def read_raw_text(text):
    """
    Records from text pasted out of the spreadsheet

    The text may be URL-encoded; cells are split on tabs or commas and the
    first non-blank line is treated as the header.
    """
    lines = [line for line in unquote(text or "").splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    try:
        frame = pd.read_csv(
            io.StringIO("\n".join(lines[1:])),
            sep=r"[\t,]+",
            engine="python",
            header=None,
            names=RAW_TEXT_COLUMNS,
            dtype=str,
        )
    except (ValueError, pd.errors.ParserError) as e:
        raise ValidationFailed.single("text", f"Could not read pasted text: {e}")

    records = []
    for raw in _clean_frame(frame).to_dict(orient="records"):
        records.append({
            COL_SHIPMENT: raw["shipment"],
            COL_PLANT: raw["plant"],
            COL_PART: raw["part_number"],
            COL_QTY: raw["mg_qty"] or raw["qty"],
            COL_ROUTE: raw["instructions"],
            COL_TRAILER: raw["trailer_number"],
        })
    return records


def _cell(record, column):
    value = record.get(column)
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _to_quantity(value):
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def group_records(records, split_criteria="shipment"):
    """
    Group spreadsheet records into request rows

    shipment: one request per shipment number
    trailer:  one per (trailer, shipment)
    route:    one per (route instructions, shipment)
    part:     one per part number, named "<part>-group"

    Lines without a part number or quantity are dropped.
    """
    if split_criteria not in SPLIT_CRITERIA:
        raise ValidationFailed.single(
            "splitCriteria", f"Split criteria must be one of: {', '.join(SPLIT_CRITERIA)}"
        )

    groups = {}
    for record in records:
        shipment_number = _cell(record, COL_SHIPMENT)
        plant = _cell(record, COL_PLANT)
        trailer_number = _cell(record, COL_TRAILER)
        route_info = _cell(record, COL_ROUTE)
        part_number = _cell(record, COL_PART)
        quantity = _to_quantity(_cell(record, COL_QTY) or _cell(record, COL_QTY_FALLBACK))

        if not part_number or not quantity:
            continue

        if split_criteria == "trailer":
            key = f"{trailer_number or 'no-trailer'}-{shipment_number}"
        elif split_criteria == "route":
            key = f"{route_info or 'no-route'}-{shipment_number}"
        elif split_criteria == "part":
            key = part_number
        else:
            key = shipment_number

        if key not in groups:
            groups[key] = BulkRow(
                shipment_number=f"{part_number}-group" if split_criteria == "part" else shipment_number,
                plant=plant,
                route_info=route_info,
            )
        groups[key].parts.append(BulkPart(part_number, quantity, trailer_number))

    return list(groups.values())


def validate_row(row):
    """Messages for everything wrong with a grouped row; empty when valid"""
    errors = []
    if not row.shipment_number:
        errors.append("Shipment number is required")
    if not row.parts:
        errors.append("At least one part with quantity is required")
    for index, part in enumerate(row.parts, start=1):
        if not part.part_number:
            errors.append(f"Part number is required for part {index}")
        if not part.quantity or part.quantity <= 0:
            errors.append(f"Valid quantity is required for part {index}")
        if not part.trailer_number:
            errors.append(f"Trailer number is required for part {index}")
    return errors


def row_payload(row):
    """Create-request payload for a grouped row; pallets are derived from parts"""
    trailers = {}
    for part in row.parts:
        trailers.setdefault(part.trailer_number, []).append(
            {"partNumber": part.part_number, "quantity": part.quantity}
        )
    return {
        "shipmentNumber": row.shipment_number,
        "plant": row.plant or None,
        "routeInfo": row.route_info or None,
        "trailers": [
            {"trailerNumber": trailer_number, "parts": parts}
            for trailer_number, parts in trailers.items()
        ],
    }


def process_rows(actor, rows):
    """
    Create one request per row, isolating failures

    Returns:
        BulkResult with per-row errors keyed by 1-based row index
    """
    if not can_create_request(actor):
        raise AuthorizationDenied("Unauthorized: Customer service access required")

    result = BulkResult(total_rows=len(rows))
    for index, row in enumerate(rows, start=1):
        errors = validate_row(row)
        if errors:
            result.fail(index, errors)
            continue

        try:
            request = request_service.create_request(actor, row_payload(row))
        except ValidationFailed as e:
            result.fail(index, [m for messages in e.errors.values() for m in messages])
            continue
        except PersistenceFailure as e:
            logger.warning("Bulk row %s failed to save: %s", index, e.message)
            result.fail(index, [f"Database error: {e.message}"])
            continue

        result.successful_rows += 1
        result.created_ids.append(request.id)

    logger.info("Bulk upload by user %s: %s of %s rows created",
                actor.id, result.successful_rows, result.total_rows)
    return result


def upload(actor, file=None, filename=None, text=None, split_criteria="shipment"):
    """Entry point for the bulk upload route: parse, group, then process"""
    if not can_create_request(actor):
        raise AuthorizationDenied("Unauthorized: Customer service access required")

    if file is not None:
        records = read_spreadsheet(file, filename)
    elif text:
        records = read_raw_text(text)
    else:
        raise ValidationFailed.single("file", "No file or text provided")

    rows = group_records(records, split_criteria or "shipment")
    if not rows:
        raise ValidationFailed.single("file", "No data found to process")

    return process_rows(actor, rows)
