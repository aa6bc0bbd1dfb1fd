import pytest
from sqlalchemy.exc import IntegrityError

from fleetcare.core.exceptions import (
    FindingNoteRequired,
    InvalidRejectionReason,
    InvalidTransition,
    MediaUploadFailed,
    NoActiveAssignment,
    SubscriptionNotActive,
    ValidationFailed,
    VisitAlreadyInProgress,
)
from fleetcare.models.status_event import StatusEvent
from fleetcare.models.visit import Visit, VisitMedia
from fleetcare.services import assignment_service, payment_service, subscription_service, visit_service
from fleetcare.services.visit_service import MediaUpload


@pytest.fixture
def assigned(db, active_subscription, technician, admin):
    assignment_service.assign_technician(db, active_subscription.id, technician.id, admin.id)
    return active_subscription


def _photo(name="brake.jpg", data=b"\xff\xd8jpeg"):
    return MediaUpload(filename=name, content_type="image/jpeg", data=data)


def test_full_visit_lifecycle(db, customer, plan, technician, technician_b, admin, blob_store):
    """申込 → 支払い → 確認 → 割当 → 訪問 → 提出 → 確認"""
    sub = subscription_service.create_subscription(
        db, customer.id, plan.id, vehicle_count=1,
        vehicles=[{"make": "Toyota", "model": "Corolla"}],
    )
    payment_service.submit_payment_evidence(db, sub.id, customer.id, "bank_transfer", "TX123")
    confirmation = payment_service.confirm_payment(db, sub.id, admin.id)
    assert confirmation.payment is not None and confirmation.invoice is not None

    assignment_service.assign_technician(db, sub.id, technician.id, admin.id)

    visit = visit_service.start_visit(db, sub.id, technician.id)
    assert visit.visit_number == 1
    assert visit.status == "in_progress"

    with pytest.raises(NoActiveAssignment):
        visit_service.start_visit(db, sub.id, technician_b.id)

    visit_service.record_findings(
        db, visit.id, technician.id,
        system_findings=[
            {"system": "Engine Management", "status": "pass"},
            {"system": "Braking Management", "status": "needs_attention", "note": "Replace front pads"},
        ],
        notes="Customer reports squeal when braking.",
        duration=45,
    )
    visit = visit_service.submit_visit(
        db, visit.id, technician.id,
        inspections=[{"component": "Front brake pads", "status": "needs_attention", "notes": "3mm"}],
        media=[_photo()],
        blob_store=blob_store,
    )
    assert visit.status == "pending_confirmation"
    assert visit.completed_at is not None
    assert len(visit.inspections) == 1
    assert len(visit.media) == 1
    assert visit.media[0].url.startswith("https://media.test/")

    visit = visit_service.confirm_visit(db, visit.id, admin.id)
    assert visit.status == "confirmed"
    assert visit.confirmed_by == admin.id

    actions = [
        e.action for e in db.query(StatusEvent).filter(
            StatusEvent.entity_type == "visit", StatusEvent.entity_id == visit.id,
        ).order_by(StatusEvent.seq)
    ]
    assert actions == ["started", "submitted", "confirmed"]


def test_start_requires_active_paid_subscription(db, pending_subscription, technician):
    with pytest.raises(SubscriptionNotActive):
        visit_service.start_visit(db, pending_subscription.id, technician.id)


def test_start_requires_assignment(db, active_subscription, technician):
    with pytest.raises(NoActiveAssignment):
        visit_service.start_visit(db, active_subscription.id, technician.id)


def test_only_one_visit_in_progress(db, assigned, technician):
    visit_service.start_visit(db, assigned.id, technician.id)
    with pytest.raises(VisitAlreadyInProgress):
        visit_service.start_visit(db, assigned.id, technician.id)
    assert db.query(Visit).count() == 1


def test_storage_rejects_second_in_progress_slot(db, assigned, technician):
    first = visit_service.start_visit(db, assigned.id, technician.id)
    db.add(Visit(
        subscription_id=assigned.id,
        assignment_id=first.assignment_id,
        technician_id=technician.id,
        visit_number=2,
        status="in_progress",
        in_progress_slot=1,
        started_at=first.started_at,
    ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_rejected_visit_is_terminal_and_numbering_continues(db, assigned, technician, admin, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    visit_service.submit_visit(db, visit.id, technician.id, blob_store=blob_store)

    with pytest.raises(InvalidRejectionReason):
        visit_service.reject_visit(db, visit.id, admin.id, "   ")

    rejected = visit_service.reject_visit(db, visit.id, admin.id, "Photos missing")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Photos missing"

    with pytest.raises(InvalidTransition):
        visit_service.confirm_visit(db, visit.id, admin.id)
    with pytest.raises(InvalidTransition):
        visit_service.record_findings(db, visit.id, technician.id, notes="retry")

    retry = visit_service.start_visit(db, assigned.id, technician.id)
    assert retry.visit_number == visit.visit_number + 1


def test_non_pass_finding_without_note_is_rejected(db, assigned, technician):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    with pytest.raises(FindingNoteRequired):
        visit_service.record_findings(
            db, visit.id, technician.id,
            system_findings=[{"system": "Lighting Management", "status": "urgent_attention", "note": " "}],
        )
    db.refresh(visit)
    assert visit.system_findings == []


def test_submit_rechecks_stored_findings(db, assigned, technician, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    visit.system_findings = [{"system": "Coolant Management", "status": "needs_attention", "note": ""}]
    db.commit()

    with pytest.raises(FindingNoteRequired):
        visit_service.submit_visit(db, visit.id, technician.id, blob_store=blob_store)
    db.refresh(visit)
    assert visit.status == "in_progress"


def test_media_failure_leaves_visit_in_progress(db, assigned, technician, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    blob_store.fail_after = 1

    with pytest.raises(MediaUploadFailed):
        visit_service.submit_visit(
            db, visit.id, technician.id,
            media=[_photo("a.jpg"), _photo("b.jpg")],
            blob_store=blob_store,
        )

    db.refresh(visit)
    assert visit.status == "in_progress"
    assert db.query(VisitMedia).count() == 0
    assert blob_store.objects == {}
    assert len(blob_store.deleted) == 1

    blob_store.fail_after = None
    visit = visit_service.submit_visit(db, visit.id, technician.id, media=[_photo("a.jpg")], blob_store=blob_store)
    assert visit.status == "pending_confirmation"


def test_non_media_upload_is_rejected(db, assigned, technician, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    with pytest.raises(ValidationFailed):
        visit_service.submit_visit(
            db, visit.id, technician.id,
            media=[MediaUpload(filename="notes.pdf", content_type="application/pdf", data=b"%PDF")],
            blob_store=blob_store,
        )
    assert blob_store.puts == 0


def test_submit_twice_is_rejected(db, assigned, technician, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    visit_service.submit_visit(db, visit.id, technician.id, blob_store=blob_store)
    with pytest.raises(InvalidTransition):
        visit_service.submit_visit(db, visit.id, technician.id, blob_store=blob_store)


def test_reassignment_hands_over_in_progress_visit(db, assigned, technician, technician_b, admin, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    new_assignment = assignment_service.assign_technician(db, assigned.id, technician_b.id, admin.id)

    with pytest.raises(NoActiveAssignment):
        visit_service.record_findings(db, visit.id, technician.id, notes="old tech")

    visit = visit_service.record_findings(db, visit.id, technician_b.id, notes="picked up by B")
    assert visit.technician_id == technician_b.id
    assert visit.assignment_id == new_assignment.id

    visit = visit_service.submit_visit(db, visit.id, technician_b.id, blob_store=blob_store)
    assert visit.status == "pending_confirmation"


def test_record_findings_keeps_unspecified_fields(db, assigned, technician):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    visit_service.record_findings(
        db, visit.id, technician.id,
        notes="initial", location="Depot 3",
        parts_used=[{"name": "Wiper blade", "quantity": 2, "cost": 18}],
    )
    visit = visit_service.record_findings(db, visit.id, technician.id, recommendations="Rotate tyres")

    assert visit.findings == "initial"
    assert visit.location == "Depot 3"
    assert visit.recommendations == "Rotate tyres"
    assert visit.parts_used == [{"name": "Wiper blade", "quantity": 2, "cost": 18}]


def test_report_renders_findings_and_parts(db, assigned, technician, blob_store):
    visit = visit_service.start_visit(db, assigned.id, technician.id)
    visit_service.record_findings(
        db, visit.id, technician.id,
        system_findings=[{"system": "Braking Management", "status": "needs_attention", "note": "Pads at 3mm"}],
        parts_used=[{"name": "Brake fluid", "quantity": 1, "cost": 12}],
        duration=30,
    )
    visit = visit_service.submit_visit(
        db, visit.id, technician.id,
        inspections=[{"component": "Brake pads", "status": "fair"}],
        blob_store=blob_store,
    )

    report = visit_service.render_visit_report(visit)
    assert "Visit #1" in report
    assert "Braking Management System: NEEDS ATTENTION - Needed: Pads at 3mm" in report
    assert "1. Brake fluid - Qty: 1 - Cost: $12" in report
    assert "1. Brake pads: FAIR" in report
    assert "Duration: 30 minutes" in report
    assert "No photos uploaded" in report
