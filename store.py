"""
Persistence layer for MG Trako
All database reads and writes used by the services go through here. Write
helpers never commit on their own; callers group them with atomic().
"""
import logging
from contextlib import contextmanager

from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from date_utils import utcnow
from errors import NotFound, PersistenceFailure
from models import db, User, Trailer, RequestTrailer, MustGoRequest, PartDetail, PartInfo, RequestLog
from request_shapes import flatten
from role_policy import Role

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO NOTHING
_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


@contextmanager
def atomic():
    """Commit the block as one transaction, rolling back on any error"""
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Transaction rolled back")
        raise PersistenceFailure(str(getattr(e, "orig", None) or e)) from e
    except Exception:
        db.session.rollback()
        raise


# ---------- Users ----------
def find_user(user_id):
    return db.session.get(User, user_id)


def find_user_by_email(email):
    return User.query.filter_by(email=(email or "").strip().lower()).first()


def list_users():
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(name, email, password, role=Role.PENDING):
    with atomic():
        user = User(name=name, email=email.strip().lower(), role=role)
        user.set_password(password)
        db.session.add(user)
    return user


def update_user_role(user_id, role):
    with atomic():
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound("User", user_id)
        user.role = role
    return user


# ---------- Requests ----------
def _aggregate_query():
    return MustGoRequest.query.options(
        selectinload(MustGoRequest.part_details),
        selectinload(MustGoRequest.request_trailers),
        selectinload(MustGoRequest.logs),
    )


def find_request(request_id):
    """Request with parts, trailers and logs loaded, or None"""
    return _aggregate_query().filter(MustGoRequest.id == request_id).first()


def list_requests(status=None, search_text=None, created_by=None, include_deleted=False):
    """
    Requests matching every given filter, newest first

    Args:
        status: RequestStatus to match
        search_text: case-insensitive substring of the shipment, a part
            number or a trailer number
        created_by: creator user id
        include_deleted: include soft-deleted requests
    """
    query = _aggregate_query()
    if not include_deleted:
        query = query.filter(MustGoRequest.deleted.is_(False))
    if status is not None:
        query = query.filter(MustGoRequest.status == status)
    if created_by is not None:
        query = query.filter(MustGoRequest.created_by_id == created_by)
    if search_text and search_text.strip():
        pattern = f"%{search_text.strip()}%"
        query = query.filter(or_(
            MustGoRequest.shipment_number.ilike(pattern),
            MustGoRequest.part_details.any(PartDetail.part_number.ilike(pattern)),
            MustGoRequest.request_trailers.any(
                RequestTrailer.trailer.has(Trailer.trailer_number.ilike(pattern))
            ),
        ))
    return query.order_by(MustGoRequest.created_at.desc(), MustGoRequest.id.desc()).all()


def upsert_trailer(trailer_number):
    """
    Insert-or-fetch a trailer by number

    Relies on the unique constraint on trailer_number, so two writers
    creating the same new trailer both end up with the one row.
    """
    insert = _CONFLICT_INSERTS.get(db.engine.dialect.name)
    if insert is not None:
        db.session.execute(
            insert(Trailer)
            .values(trailer_number=trailer_number)
            .on_conflict_do_nothing(index_elements=["trailer_number"])
        )
        return Trailer.query.filter_by(trailer_number=trailer_number).one()

    try:
        with db.session.begin_nested():
            trailer = Trailer(trailer_number=trailer_number)
            db.session.add(trailer)
        return trailer
    except IntegrityError:
        return Trailer.query.filter_by(trailer_number=trailer_number).one()


def append_log(request_id, action, performed_by_id):
    log = RequestLog(request_id=request_id, action=action, performed_by_id=performed_by_id)
    db.session.add(log)
    return log


def _write_contents(request, trailers):
    """Attach trailer links and part rows for the given trailer groups"""
    resolved = {}
    for row in flatten(trailers):
        trailer = resolved.get(row.trailer_number)
        if trailer is None:
            trailer = upsert_trailer(row.trailer_number)
            resolved[row.trailer_number] = trailer
            request.request_trailers.append(RequestTrailer(trailer=trailer))
        request.part_details.append(
            PartDetail(part_number=row.part_number, quantity=row.quantity, trailer=trailer)
        )


def _apply_scalars(request, state):
    request.shipment_number = state.shipment_number
    request.plant = state.plant
    request.pallet_count = state.pallet_count
    request.route_info = state.route_info
    request.additional_notes = state.additional_notes


def create_request_transaction(state, created_by_id, log_action):
    """Write a new request, its trailers, parts and creation log atomically"""
    with atomic():
        request = MustGoRequest(created_by_id=created_by_id, notes=[])
        _apply_scalars(request, state)
        db.session.add(request)
        db.session.flush()
        _write_contents(request, state.trailers)
        db.session.flush()
        append_log(request.id, log_action, created_by_id)
        request_id = request.id
    return find_request(request_id)


def edit_request_transaction(request_id, state, performed_by_id, log_actions):
    """
    Replace a request's scalar fields and its whole trailer/part contents

    Existing part and trailer-link rows are deleted and recreated rather
    than patched; the given log lines are appended in the same transaction.
    """
    with atomic():
        request = find_request(request_id)
        if request is None:
            raise NotFound("Request", request_id)
        _apply_scalars(request, state)
        request.updated_at = utcnow()

        request.part_details = []
        request.request_trailers = []
        db.session.flush()
        _write_contents(request, state.trailers)

        for action in log_actions:
            append_log(request.id, action, performed_by_id)
    return find_request(request_id)


# ---------- Parts catalog ----------
def find_part(part_id):
    return db.session.get(PartInfo, part_id)


def find_part_by_number(part_number, exclude_id=None):
    query = PartInfo.query.filter(PartInfo.part_number == part_number)
    if exclude_id is not None:
        query = query.filter(PartInfo.id != exclude_id)
    return query.first()


def list_parts(search_text=None):
    """Catalog entries ordered by part number, optionally filtered on number or description"""
    query = PartInfo.query
    if search_text and search_text.strip():
        pattern = f"%{search_text.strip()}%"
        query = query.filter(or_(
            PartInfo.part_number.ilike(pattern),
            PartInfo.description.ilike(pattern),
        ))
    return query.order_by(PartInfo.part_number.asc()).all()


def save_part(part, **values):
    """Apply column values to a new or existing PartInfo and commit"""
    with atomic():
        for name, value in values.items():
            setattr(part, name, value)
        db.session.add(part)
    return part


def part_in_use(part_number):
    """True while any request, deleted or not, still carries the part number"""
    return db.session.query(
        PartDetail.query.filter(PartDetail.part_number == part_number).exists()
    ).scalar()


def delete_part(part):
    with atomic():
        db.session.delete(part)
