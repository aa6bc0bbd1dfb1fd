import pytest
from sqlalchemy.exc import IntegrityError

from fleetcare.core.exceptions import InvalidTechnician, NoActiveAssignment, SubscriptionNotPayable
from fleetcare.models.assignment import Assignment
from fleetcare.services import assignment_service

from conftest import make_user


def test_assign_requires_confirmed_payment(db, pending_subscription, technician, admin):
    with pytest.raises(SubscriptionNotPayable):
        assignment_service.assign_technician(db, pending_subscription.id, technician.id, admin.id)
    assert db.query(Assignment).count() == 0


def test_assign_rejects_non_technician(db, active_subscription, customer, admin):
    with pytest.raises(InvalidTechnician):
        assignment_service.assign_technician(db, active_subscription.id, customer.id, admin.id)


def test_reassignment_ends_previous_and_keeps_notes(db, active_subscription, technician, technician_b, admin):
    first = assignment_service.assign_technician(
        db, active_subscription.id, technician.id, admin.id, notes="gate code 4411",
    )
    second = assignment_service.assign_technician(db, active_subscription.id, technician_b.id, admin.id)

    db.refresh(first)
    assert first.status == "ended"
    assert first.ended_by == admin.id
    assert first.notes == "gate code 4411"
    assert second.status == "active"

    active = assignment_service.get_active_assignment(db, active_subscription.id)
    assert active.id == second.id
    history = assignment_service.list_assignment_history(db, active_subscription.id)
    assert {a.id for a in history} == {first.id, second.id}


def test_storage_rejects_second_active_slot(db, active_subscription, technician, technician_b, admin):
    assignment_service.assign_technician(db, active_subscription.id, technician.id, admin.id)
    db.add(Assignment(
        subscription_id=active_subscription.id,
        technician_id=technician_b.id,
        assigned_by=admin.id,
        status="active",
        active_slot=1,
    ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_revoke_ends_assignment(db, active_subscription, technician, admin):
    assignment_service.assign_technician(db, active_subscription.id, technician.id, admin.id)
    ended = assignment_service.revoke_assignment(db, active_subscription.id, admin.id)

    assert ended.status == "ended"
    assert assignment_service.get_active_assignment(db, active_subscription.id) is None
    with pytest.raises(NoActiveAssignment):
        assignment_service.revoke_assignment(db, active_subscription.id, admin.id)


def test_technician_sees_only_current_paid_assignments(db, active_subscription, technician, technician_b, admin):
    assignment_service.assign_technician(db, active_subscription.id, technician.id, admin.id)
    assert len(assignment_service.list_technician_assignments(db, technician.id)) == 1

    assignment_service.assign_technician(db, active_subscription.id, technician_b.id, admin.id)
    assert assignment_service.list_technician_assignments(db, technician.id) == []
    assert len(assignment_service.list_technician_assignments(db, technician_b.id)) == 1


def test_inactive_technician_cannot_be_assigned(db, active_subscription, admin):
    retired = make_user(db, "technician", "retired@example.com")
    retired.is_active = False
    db.commit()
    with pytest.raises(InvalidTechnician):
        assignment_service.assign_technician(db, active_subscription.id, retired.id, admin.id)
