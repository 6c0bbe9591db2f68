import pytest
from sqlalchemy.exc import OperationalError

import request_service
import store
from errors import AuthorizationDenied, NotFound, PersistenceFailure, ValidationFailed
from models import db, MustGoRequest, PartDetail, RequestLog, RequestTrailer, Trailer
from role_policy import Role, RequestStatus
from tests.conftest import payload


def log_actions(request_id):
    return [
        log.action
        for log in RequestLog.query.filter_by(request_id=request_id).order_by(RequestLog.id).all()
    ]


@pytest.fixture
def cs(actors):
    return actors[Role.CUSTOMER_SERVICE]


@pytest.fixture
def warehouse(actors):
    return actors[Role.WAREHOUSE]


@pytest.fixture
def admin(actors):
    return actors[Role.ADMIN]


@pytest.fixture
def created(cs):
    return request_service.create_request(
        cs, payload(trailers={"T1": [("P1", 5)]}, plant="FV58", routeInfo="Dock 4")
    )


# ---------- create ----------
def test_create_writes_aggregate_and_log(created, cs):
    assert created.shipment_number == "SHP001"
    assert created.status == RequestStatus.PENDING
    assert created.pallet_count == 1
    assert created.created_by_id == cs.id
    assert created.notes == []
    assert [t.trailer_number for t in created.trailer_groups] == ["T1"]
    assert len(created.request_trailers) == 1
    assert log_actions(created.id) == ["Request created with 1 part number(s)"]


def test_admin_can_create(admin):
    created = request_service.create_request(admin, payload())
    assert created.created_by_id == admin.id


@pytest.mark.parametrize("role", [Role.WAREHOUSE, Role.REPORT_RUNNER, Role.PENDING])
def test_create_denied_for_other_roles(actors, role):
    with pytest.raises(AuthorizationDenied):
        request_service.create_request(actors[role], payload())
    assert MustGoRequest.query.count() == 0


@pytest.mark.parametrize("data", [
    payload(palletCount=0),
    payload(trailers={}),
])
def test_invalid_create_persists_nothing(cs, data):
    with pytest.raises(ValidationFailed):
        request_service.create_request(cs, data)
    assert MustGoRequest.query.count() == 0
    assert Trailer.query.count() == 0
    assert RequestLog.query.count() == 0


def test_trailers_are_shared_between_requests(cs):
    first = request_service.create_request(cs, payload("S1", {"T1": [("P1", 5)]}))
    second = request_service.create_request(cs, payload("S2", {"T1": [("P2", 5)], "T2": [("P3", 1)]}))
    assert Trailer.query.count() == 2
    assert store.upsert_trailer("T1").id == first.request_trailers[0].trailer_id
    assert {rt.trailer.trailer_number for rt in second.request_trailers} == {"T1", "T2"}


def test_upsert_trailer_is_idempotent(ctx):
    first = store.upsert_trailer("ST12345")
    second = store.upsert_trailer("ST12345")
    assert first.id == second.id
    assert Trailer.query.filter_by(trailer_number="ST12345").count() == 1


def test_persistence_failure_rolls_back_everything(cs, monkeypatch):
    def broken_append_log(*args, **kwargs):
        raise OperationalError("INSERT INTO request_log", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store, "append_log", broken_append_log)
    with pytest.raises(PersistenceFailure) as excinfo:
        request_service.create_request(cs, payload())
    assert "disk I/O error" in excinfo.value.message
    assert MustGoRequest.query.count() == 0
    assert PartDetail.query.count() == 0
    assert Trailer.query.count() == 0


# ---------- get / list ----------
def test_get_missing_request(cs):
    with pytest.raises(NotFound):
        request_service.get_request(cs, 999)


def test_present_includes_can_edit(created, cs, other_cs, warehouse):
    assert request_service.present(cs, created)["canEdit"] is True
    assert request_service.present(other_cs, created)["canEdit"] is False
    assert request_service.present(warehouse, created)["canEdit"] is True


def test_list_filters(cs, other_cs, warehouse):
    first = request_service.create_request(cs, payload("ALPHA1", {"TR-9": [("PN-77", 5)]}))
    second = request_service.create_request(other_cs, payload("BETA2", {"T2": [("PN-88", 5)]}))
    request_service.update_status(warehouse, second.id, status="IN_PROGRESS")

    assert [r.id for r in request_service.list_requests(cs)] == [second.id, first.id]
    assert [r.id for r in request_service.list_requests(cs, mine=True)] == [first.id]
    assert [r.id for r in request_service.list_requests(cs, status="IN_PROGRESS")] == [second.id]
    assert [r.id for r in request_service.list_requests(cs, search="alpha")] == [first.id]
    assert [r.id for r in request_service.list_requests(cs, search="pn-88")] == [second.id]
    assert [r.id for r in request_service.list_requests(cs, search="tr-9")] == [first.id]


def test_list_rejects_bad_status(cs):
    with pytest.raises(ValidationFailed):
        request_service.list_requests(cs, status="SHIPPED")


def test_pending_users_cannot_list(actors):
    with pytest.raises(AuthorizationDenied):
        request_service.list_requests(actors[Role.PENDING])


# ---------- status / notes ----------
def test_status_update_logs_and_changes_status(created, warehouse):
    updated = request_service.update_status(warehouse, created.id, status="IN_PROGRESS")
    assert updated.status == RequestStatus.IN_PROGRESS
    assert log_actions(created.id)[-1] == "Status updated to IN_PROGRESS"


def test_notes_are_appended(created, warehouse):
    request_service.update_status(warehouse, created.id, note="Dock 12")
    updated = request_service.update_status(warehouse, created.id, note="Driver here")
    assert updated.notes == ["Dock 12", "Driver here"]
    assert log_actions(created.id)[-2:] == ["Note added: Dock 12", "Note added: Driver here"]


def test_status_and_note_share_one_log_line(created, warehouse):
    updated = request_service.update_status(warehouse, created.id, status="COMPLETED", note="Shipped")
    assert updated.status == RequestStatus.COMPLETED
    assert updated.notes == ["Shipped"]
    assert log_actions(created.id) == [
        "Request created with 1 part number(s)",
        "Status updated to COMPLETED with note: Shipped",
    ]


def test_status_update_validation(created, warehouse):
    with pytest.raises(ValidationFailed):
        request_service.update_status(warehouse, created.id, status="LOST")
    with pytest.raises(ValidationFailed):
        request_service.update_status(warehouse, created.id, status="PENDING")
    with pytest.raises(ValidationFailed):
        request_service.update_status(warehouse, created.id, note="   ")


@pytest.mark.parametrize("fields,bad_field", [
    ({"note": 5}, "note"),
    ({"note": ["Dock 12"]}, "note"),
    ({"status": 3}, "status"),
    ({"status": {"value": "COMPLETED"}, "note": "Shipped"}, "status"),
])
def test_status_update_rejects_non_string_input(created, warehouse, fields, bad_field):
    with pytest.raises(ValidationFailed) as excinfo:
        request_service.update_status(warehouse, created.id, **fields)
    assert bad_field in excinfo.value.errors
    assert log_actions(created.id) == ["Request created with 1 part number(s)"]


def test_status_update_denied_for_customer_service(created, cs):
    with pytest.raises(AuthorizationDenied):
        request_service.update_status(cs, created.id, status="IN_PROGRESS")


def test_status_update_denied_on_deleted_request(created, admin, warehouse):
    request_service.soft_delete_request(admin, created.id)
    with pytest.raises(AuthorizationDenied):
        request_service.update_status(warehouse, created.id, status="IN_PROGRESS")


# ---------- edit ----------
def test_edit_quantity_logs_part_change(created, cs):
    edited = request_service.edit_request(
        cs, created.id, payload(trailers={"T1": [("P1", 8)]}, plant="FV58", routeInfo="Dock 4")
    )
    assert edited.part_details[0].quantity == 8
    assert log_actions(created.id)[1:] == [
        "Part changes: updated part P1 quantity from 5 to 8 in trailer T1",
    ]


def test_edit_without_changes_logs_nothing(created, warehouse):
    request_service.edit_request(
        warehouse, created.id, payload(trailers={"T1": [("P1", 5)]}, plant="FV58", routeInfo="Dock 4")
    )
    assert log_actions(created.id) == ["Request created with 1 part number(s)"]


def test_edit_moves_trailer_and_changes_fields(created, warehouse):
    edited = request_service.edit_request(
        warehouse, created.id,
        payload("SHP002", {"T2": [("P1", 5)]}, plant="FV58", routeInfo="Dock 4"),
    )
    assert edited.shipment_number == "SHP002"
    assert [t.trailer_number for t in edited.trailer_groups] == ["T2"]
    assert RequestTrailer.query.filter_by(request_id=created.id).count() == 1
    assert log_actions(created.id)[1:] == [
        "Request details changed: shipmentNumber from SHP001 to SHP002",
        "Part changes: moved parts from trailer T1 to T2",
    ]
    # the old trailer row stays; it is shared and never deleted
    assert Trailer.query.filter_by(trailer_number="T1").count() == 1


def test_edit_replaces_part_rows(created, cs):
    request_service.edit_request(
        cs, created.id, payload(trailers={"T1": [("P1", 5), ("P2", 30)]}, plant="FV58", routeInfo="Dock 4")
    )
    parts = PartDetail.query.filter_by(request_id=created.id).order_by(PartDetail.id).all()
    assert [(p.part_number, p.quantity) for p in parts] == [("P1", 5), ("P2", 30)]
    assert db.session.get(MustGoRequest, created.id).pallet_count == 3


def test_edit_denied_for_other_customer_service(created, other_cs):
    with pytest.raises(AuthorizationDenied):
        request_service.edit_request(other_cs, created.id, payload())


def test_deleted_request_cannot_be_edited_by_non_admins(created, admin, cs):
    request_service.soft_delete_request(admin, created.id)
    with pytest.raises(NotFound):
        request_service.edit_request(cs, created.id, payload(trailers={"T1": [("P1", 8)]}))
    assert PartDetail.query.filter_by(request_id=created.id).one().quantity == 5

    edited = request_service.edit_request(admin, created.id, payload(trailers={"T1": [("P1", 8)]}))
    assert edited.part_details[0].quantity == 8
    assert edited.deleted is True


def test_invalid_edit_leaves_request_untouched(created, cs):
    with pytest.raises(ValidationFailed):
        request_service.edit_request(cs, created.id, payload(trailers={}))
    assert PartDetail.query.filter_by(request_id=created.id).count() == 1
    assert len(log_actions(created.id)) == 1


# ---------- soft delete / restore ----------
def test_soft_delete_then_restore(created, admin):
    deleted = request_service.soft_delete_request(admin, created.id)
    assert deleted.deleted is True
    assert deleted.deleted_at is not None

    restored = request_service.restore_request(admin, created.id)
    assert restored.deleted is False
    assert restored.deleted_at is None
    assert log_actions(created.id)[1:] == [
        "Request marked as deleted",
        "Request restored from deleted state",
    ]


def test_delete_is_admin_only(created, warehouse):
    with pytest.raises(AuthorizationDenied):
        request_service.soft_delete_request(warehouse, created.id)
    with pytest.raises(AuthorizationDenied):
        request_service.restore_request(warehouse, created.id)


def test_delete_and_restore_state_checks(created, admin):
    with pytest.raises(ValidationFailed):
        request_service.restore_request(admin, created.id)
    request_service.soft_delete_request(admin, created.id)
    with pytest.raises(ValidationFailed):
        request_service.soft_delete_request(admin, created.id)


def test_deleted_requests_hidden_from_non_admins(created, admin, cs):
    request_service.soft_delete_request(admin, created.id)
    with pytest.raises(NotFound):
        request_service.get_request(cs, created.id)
    assert request_service.get_request(admin, created.id).deleted is True
    assert request_service.list_requests(cs) == []
    assert [r.id for r in request_service.list_requests(admin, include_deleted=True)] == [created.id]
    with pytest.raises(AuthorizationDenied):
        request_service.list_requests(cs, include_deleted=True)
