from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

from date_utils import utcnow, format_iso, format_relative_time
from request_shapes import group
from role_policy import Role, RequestStatus
from status_helpers import get_status_display

db = SQLAlchemy()


# ---------- Models ----------
class User(UserMixin, db.Model):
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    # Only an admin can change this; new registrations start as PENDING
    role = db.Column(db.Enum(Role, native_enum=False, length=20), nullable=False, default=Role.PENDING)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def set_password(self, password):
        """Hash and set the user's password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify password against hash"""
        return check_password_hash(self.password_hash, password)

    def get_id(self):
        """Required by Flask-Login"""
        return str(self.id)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": Role(self.role).value,
            "createdAt": format_iso(self.created_at),
            "updatedAt": format_iso(self.updated_at),
        }


class Trailer(db.Model):
    """Physical trailer, shared across requests and never deleted"""
    __tablename__ = 'trailer'

    id = db.Column(db.Integer, primary_key=True)
    trailer_number = db.Column(db.String(64), unique=True, nullable=False, index=True)  # natural key for upserts
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class RequestTrailer(db.Model):
    """Many-to-many link between requests and trailers"""
    __tablename__ = 'request_trailer'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'trailer_id', name='uq_request_trailer'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('must_go_request.id', ondelete='CASCADE'), nullable=False, index=True)
    trailer_id = db.Column(db.Integer, db.ForeignKey('trailer.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    request = db.relationship("MustGoRequest", back_populates="request_trailers")
    trailer = db.relationship("Trailer", lazy='joined')


class MustGoRequest(db.Model):
    __tablename__ = 'must_go_request'

    id = db.Column(db.Integer, primary_key=True)
    shipment_number = db.Column(db.String(100), nullable=False, index=True)
    plant = db.Column(db.String(4), nullable=True)  # 4 alphanumeric characters when present
    pallet_count = db.Column(db.Integer, nullable=False)
    status = db.Column(db.Enum(RequestStatus, native_enum=False, length=20), nullable=False, default=RequestStatus.PENDING)
    route_info = db.Column(db.Text, nullable=True)
    additional_notes = db.Column(db.Text, nullable=True)
    notes = db.Column(db.JSON, nullable=False, default=list)  # append-only warehouse notes

    # Soft delete
    deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    creator = db.relationship("User", lazy='joined')
    request_trailers = db.relationship(
        "RequestTrailer", back_populates="request",
        cascade='all, delete-orphan', order_by="RequestTrailer.id",
    )
    part_details = db.relationship(
        "PartDetail", back_populates="request",
        cascade='all, delete-orphan', order_by="PartDetail.id",
    )
    logs = db.relationship(
        "RequestLog", back_populates="request",
        order_by=lambda: [RequestLog.timestamp.desc(), RequestLog.id.desc()],
    )

    @property
    def trailer_groups(self):
        return group(self.part_details)

    def to_dict(self, can_edit=None, include_logs=True):
        """JSON shape of the request aggregate"""
        data = {
            "id": self.id,
            "shipmentNumber": self.shipment_number,
            "plant": self.plant,
            "palletCount": self.pallet_count,
            "status": RequestStatus(self.status).value,
            "statusDisplay": get_status_display(self.status, self.deleted).to_dict(),
            "routeInfo": self.route_info,
            "additionalNotes": self.additional_notes,
            "notes": list(self.notes or []),
            "deleted": self.deleted,
            "deletedAt": format_iso(self.deleted_at),
            "createdAt": format_iso(self.created_at),
            "updatedAt": format_iso(self.updated_at),
            "creator": {
                "id": self.creator.id,
                "name": self.creator.name,
                "email": self.creator.email,
                "role": Role(self.creator.role).value,
            } if self.creator else None,
            "trailers": [
                {
                    "trailerNumber": trailer.trailer_number,
                    "parts": [
                        {"partNumber": part.part_number, "quantity": part.quantity}
                        for part in trailer.parts
                    ],
                }
                for trailer in self.trailer_groups
            ],
            "partDetails": [part.to_dict() for part in self.part_details],
        }
        if include_logs:
            data["logs"] = [log.to_dict() for log in self.logs]
        else:
            latest = self.logs[0] if self.logs else None
            data["latestLog"] = latest.to_dict() if latest else None
            data["lastActivity"] = format_relative_time(latest.timestamp if latest else self.created_at)
        if can_edit is not None:
            data["canEdit"] = can_edit
        return data


class PartDetail(db.Model):
    """A (part number, quantity) line on one trailer of one request"""
    __tablename__ = 'part_detail'
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_part_detail_quantity_positive'),
    )

    id = db.Column(db.Integer, primary_key=True)
    part_number = db.Column(db.String(100), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    request_id = db.Column(db.Integer, db.ForeignKey('must_go_request.id', ondelete='CASCADE'), nullable=False, index=True)
    trailer_id = db.Column(db.Integer, db.ForeignKey('trailer.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    request = db.relationship("MustGoRequest", back_populates="part_details")
    trailer = db.relationship("Trailer", lazy='joined')

    def to_dict(self):
        return {
            "id": self.id,
            "partNumber": self.part_number,
            "quantity": self.quantity,
            "trailer": {
                "id": self.trailer.id,
                "trailerNumber": self.trailer.trailer_number,
            } if self.trailer else None,
        }


class PartInfo(db.Model):
    """Catalog entry for a part number; request lines reference it by number only"""
    __tablename__ = 'part_info'

    id = db.Column(db.Integer, primary_key=True)
    part_number = db.Column(db.String(100), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    weight = db.Column(db.Float, nullable=True)
    dimensions = db.Column(db.String(100), nullable=True)  # free text, e.g. "48x40x36 in"
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "partNumber": self.part_number,
            "description": self.description,
            "weight": self.weight,
            "dimensions": self.dimensions,
            "createdAt": format_iso(self.created_at),
            "updatedAt": format_iso(self.updated_at),
        }


class RequestLog(db.Model):
    """Append-only audit trail for a request"""
    __tablename__ = 'request_log'
    __table_args__ = (
        db.Index('idx_request_log_request_timestamp', 'request_id', 'timestamp'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('must_go_request.id'), nullable=False)
    action = db.Column(db.Text, nullable=False)
    performed_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    request = db.relationship("MustGoRequest", back_populates="logs")
    performer = db.relationship("User", lazy='joined')

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "timestamp": format_iso(self.timestamp),
            "performer": {
                "id": self.performer.id,
                "name": self.performer.name,
                "role": Role(self.performer.role).value,
            } if self.performer else None,
        }
