"""
System reports for admins and report runners
"""
import io
from datetime import timedelta

import pandas as pd
from sqlalchemy import func

from date_utils import utcnow, format_iso, format_datetime
from errors import AuthorizationDenied
from models import db, User, MustGoRequest
from role_policy import Role, RequestStatus, can_view_reports
from status_helpers import get_status_display

RECENT_REQUEST_LIMIT = 10
ACTIVITY_WINDOW_DAYS = 30


def _require_reports(actor):
    if not can_view_reports(actor):
        raise AuthorizationDenied("Unauthorized: Report access required")


def role_distribution():
    rows = db.session.query(User.role, func.count(User.id)).group_by(User.role).all()
    counts = {Role(role).value: count for role, count in rows}
    return [{"role": role.value, "count": counts.get(role.value, 0)} for role in Role]


def status_distribution():
    # Soft-deleted requests are left out of the live counts
    rows = (
        db.session.query(MustGoRequest.status, func.count(MustGoRequest.id))
        .filter(MustGoRequest.deleted.is_(False))
        .group_by(MustGoRequest.status)
        .all()
    )
    counts = {RequestStatus(status).value: count for status, count in rows}
    return [
        {
            "status": status.value,
            "label": get_status_display(status).label,
            "count": counts.get(status.value, 0),
        }
        for status in RequestStatus
    ]


def recent_requests(limit=RECENT_REQUEST_LIMIT):
    requests = (
        MustGoRequest.query
        .order_by(MustGoRequest.created_at.desc(), MustGoRequest.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": req.id,
            "shipmentNumber": req.shipment_number,
            "status": RequestStatus(req.status).value,
            "statusDisplay": get_status_display(req.status, req.deleted).to_dict(),
            "createdBy": req.creator.name if req.creator else None,
            "createdAt": format_iso(req.created_at),
        }
        for req in requests
    ]


def activity_summary(days=ACTIVITY_WINDOW_DAYS, now=None):
    since = (now or utcnow()) - timedelta(days=days)
    created = MustGoRequest.query.filter(MustGoRequest.created_at >= since).count()
    completed = (
        MustGoRequest.query
        .filter(MustGoRequest.created_at >= since)
        .filter(MustGoRequest.status == RequestStatus.COMPLETED)
        .count()
    )
    return {"days": days, "created": created, "completed": completed}


def build_report(actor):
    """Everything the reports page shows, in one payload"""
    _require_reports(actor)
    return {
        "userStats": role_distribution(),
        "statusDistribution": status_distribution(),
        "recentRequests": recent_requests(),
        "activity": activity_summary(),
    }


def export_requests_csv(actor):
    """CSV of every live request, one line per part"""
    _require_reports(actor)
    requests = (
        MustGoRequest.query
        .filter(MustGoRequest.deleted.is_(False))
        .order_by(MustGoRequest.created_at.desc(), MustGoRequest.id.desc())
        .all()
    )
    rows = []
    for req in requests:
        for part in req.part_details:
            rows.append({
                "shipment_number": req.shipment_number,
                "plant": req.plant or "",
                "trailer_number": part.trailer.trailer_number if part.trailer else "",
                "part_number": part.part_number,
                "quantity": part.quantity,
                "pallet_count": req.pallet_count,
                "status": RequestStatus(req.status).value,
                "route_info": req.route_info or "",
                "created_by": req.creator.name if req.creator else "",
                "created_at": format_datetime(req.created_at),
            })
    df = pd.DataFrame(rows, columns=[
        "shipment_number", "plant", "trailer_number", "part_number", "quantity",
        "pallet_count", "status", "route_info", "created_by", "created_at",
    ])
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    return buffer.getvalue()
