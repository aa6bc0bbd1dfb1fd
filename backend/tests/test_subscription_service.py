from datetime import datetime

import pytest

from fleetcare.core.exceptions import (
    ActiveSubscriptionExists,
    DuplicatePendingSubscription,
    InvalidMonths,
    InvalidPlan,
    InvalidTransition,
    InvalidVehicleCount,
    InvalidVin,
)
from fleetcare.models.status_event import StatusEvent
from fleetcare.models.subscription import Subscription
from fleetcare.services import subscription_service

from conftest import T0, make_plan


def _events(db, sub_id):
    return db.query(StatusEvent).filter(
        StatusEvent.entity_type == "subscription",
        StatusEvent.entity_id == sub_id,
    ).order_by(StatusEvent.seq).all()


class TestCreate:
    def test_creates_pending_subscription_with_vehicles(self, db, customer, plan):
        sub = subscription_service.create_subscription(
            db, customer.id, plan.id, vehicle_count=2,
            vehicles=[
                {"make": "Toyota", "model": "Corolla", "year": 2019, "vin": "1hgcm82633a-004352"},
                {"make": "Honda", "model": "Civic"},
                {"make": "", "model": "ignored"},
            ],
            now=T0,
        )

        assert sub.status == "pending_payment"
        assert sub.payment_confirmed is False
        assert sub.start_date == T0
        assert sub.end_date is None
        vehicles = subscription_service.list_vehicles(db, sub.id)
        assert [v.make for v in vehicles] == ["Toyota", "Honda"]
        assert vehicles[0].vin == "1HGCM82633A004352"
        assert all(v.subscription_status == "pending_payment" for v in vehicles)
        assert [e.action for e in _events(db, sub.id)] == ["created"]

    def test_rejects_inactive_plan(self, db, customer):
        hidden = make_plan(db, is_active=False)
        with pytest.raises(InvalidPlan):
            subscription_service.create_subscription(db, customer.id, hidden.id, vehicle_count=1)

    @pytest.mark.parametrize("count", [0, 4])
    def test_rejects_vehicle_count_outside_plan(self, db, customer, plan, count):
        with pytest.raises(InvalidVehicleCount):
            subscription_service.create_subscription(db, customer.id, plan.id, vehicle_count=count)

    def test_rejects_short_vin(self, db, customer, plan):
        with pytest.raises(InvalidVin):
            subscription_service.create_subscription(
                db, customer.id, plan.id, vehicle_count=1,
                vehicles=[{"make": "Ford", "model": "F-150", "vin": "ABC123"}],
            )
        assert db.query(Subscription).count() == 0

    def test_second_pending_subscription_is_rejected(self, db, customer, plan, pending_subscription):
        with pytest.raises(DuplicatePendingSubscription):
            subscription_service.create_subscription(db, customer.id, plan.id, vehicle_count=1)

    def test_active_subscription_blocks_new_one(self, db, customer, plan, active_subscription):
        with pytest.raises(ActiveSubscriptionExists):
            subscription_service.create_subscription(db, customer.id, plan.id, vehicle_count=1)

    def test_cancelled_subscription_allows_new_one(self, db, customer, plan, active_subscription, admin):
        subscription_service.cancel(db, active_subscription.id, actor_id=admin.id)
        sub = subscription_service.create_subscription(db, customer.id, plan.id, vehicle_count=1)
        assert sub.status == "pending_payment"


class TestActivate:
    def test_activate_sets_confirmation_fields(self, db, pending_subscription, admin):
        now = datetime(2024, 1, 20, 12, 0)
        assert subscription_service.activate(db, pending_subscription.id, actor_id=admin.id, now=now) is True

        db.refresh(pending_subscription)
        assert pending_subscription.status == "active"
        assert pending_subscription.payment_confirmed is True
        assert pending_subscription.payment_confirmed_at == now
        assert pending_subscription.payment_confirmed_by == admin.id
        assert pending_subscription.last_payment_date == now

    def test_second_activation_is_noop(self, db, pending_subscription, admin):
        subscription_service.activate(db, pending_subscription.id, actor_id=admin.id)
        assert subscription_service.activate(db, pending_subscription.id, actor_id=admin.id) is False
        assert [e.action for e in _events(db, pending_subscription.id)] == ["created", "activated"]

    def test_cannot_activate_cancelled(self, db, active_subscription, admin):
        subscription_service.cancel(db, active_subscription.id, actor_id=admin.id)
        with pytest.raises(InvalidTransition):
            subscription_service.activate(db, active_subscription.id, actor_id=admin.id)


class TestLifecycle:
    def test_cancel_then_reactivate_keeps_dates(self, db, active_subscription, admin):
        start = active_subscription.start_date
        sub = subscription_service.cancel(db, active_subscription.id, actor_id=admin.id)
        assert sub.status == "cancelled"

        sub = subscription_service.reactivate(db, active_subscription.id, actor_id=admin.id)
        assert sub.status == "active"
        assert sub.start_date == start
        assert sub.payment_confirmed is True

    def test_cancel_requires_active(self, db, pending_subscription, admin):
        with pytest.raises(InvalidTransition):
            subscription_service.cancel(db, pending_subscription.id, actor_id=admin.id)

    def test_reactivate_requires_cancelled_or_expired(self, db, active_subscription, admin):
        with pytest.raises(InvalidTransition):
            subscription_service.reactivate(db, active_subscription.id, actor_id=admin.id)

    def test_extend_monthly_from_start_date(self, db, active_subscription, admin):
        sub = subscription_service.extend(db, active_subscription.id, 1, actor_id=admin.id)
        assert sub.end_date == datetime(2024, 2, 15, 9, 0, 0)
        assert sub.status == "active"

    def test_extend_stacks_on_existing_end_date(self, db, active_subscription, admin):
        subscription_service.extend(db, active_subscription.id, 1, actor_id=admin.id)
        sub = subscription_service.extend(db, active_subscription.id, 2, actor_id=admin.id)
        assert sub.end_date == datetime(2024, 4, 15, 9, 0, 0)

    def test_extend_yearly_plan_by_fourteen_months(self, db, customer, admin):
        yearly = make_plan(db, price=1000, billing_cycle="yearly", plan_name="Annual Care")
        sub = subscription_service.create_subscription(db, customer.id, yearly.id, vehicle_count=1, now=T0)
        subscription_service.activate(db, sub.id, actor_id=admin.id)

        sub = subscription_service.extend(db, sub.id, 14, actor_id=admin.id)
        assert sub.end_date == datetime(2025, 3, 15, 9, 0, 0)

    def test_extend_clamps_month_end(self, db, customer, admin, plan):
        sub = subscription_service.create_subscription(
            db, customer.id, plan.id, vehicle_count=1, now=datetime(2024, 1, 31),
        )
        subscription_service.activate(db, sub.id, actor_id=admin.id)
        sub = subscription_service.extend(db, sub.id, 1, actor_id=admin.id)
        assert sub.end_date == datetime(2024, 2, 29)

    @pytest.mark.parametrize("months", [0, -1])
    def test_extend_rejects_non_positive_months(self, db, active_subscription, admin, months):
        with pytest.raises(InvalidMonths):
            subscription_service.extend(db, active_subscription.id, months, actor_id=admin.id)

    def test_extend_rejects_excessive_months(self, db, active_subscription, admin):
        with pytest.raises(InvalidMonths):
            subscription_service.extend(db, active_subscription.id, 120000, actor_id=admin.id)
        sub = subscription_service.extend(db, active_subscription.id, subscription_service.MAX_EXTEND_MONTHS, actor_id=admin.id)
        assert sub.end_date == datetime(2124, 1, 15, 9, 0, 0)

    def test_extend_past_year_9999_is_invalid_months(self, db, active_subscription, admin):
        active_subscription.end_date = datetime(9999, 6, 1)
        db.commit()
        with pytest.raises(InvalidMonths):
            subscription_service.extend(db, active_subscription.id, 12, actor_id=admin.id)
        db.refresh(active_subscription)
        assert active_subscription.end_date == datetime(9999, 6, 1)
        assert active_subscription.status == "active"

    def test_extend_revives_expired(self, db, active_subscription, admin):
        subscription_service.extend(db, active_subscription.id, 1, actor_id=admin.id)
        assert subscription_service.expire_due_subscriptions(db, now=datetime(2024, 3, 1)) == 1
        db.refresh(active_subscription)
        assert active_subscription.status == "expired"

        sub = subscription_service.extend(db, active_subscription.id, 1, actor_id=admin.id)
        assert sub.status == "active"
        assert sub.end_date == datetime(2024, 3, 15, 9, 0, 0)

    def test_extend_forbidden_while_pending_payment(self, db, pending_subscription, admin):
        with pytest.raises(InvalidTransition):
            subscription_service.extend(db, pending_subscription.id, 1, actor_id=admin.id)
        db.refresh(pending_subscription)
        assert pending_subscription.end_date is None

    def test_renew_resets_start_and_end(self, db, active_subscription, admin):
        now = datetime(2024, 6, 10, 8, 30)
        sub = subscription_service.renew(db, active_subscription.id, actor_id=admin.id, now=now)
        assert sub.start_date == now
        assert sub.end_date == datetime(2024, 7, 10, 8, 30)
        assert sub.last_payment_date == now

    def test_expire_ignores_open_ended_and_future(self, db, active_subscription, admin):
        assert subscription_service.expire_due_subscriptions(db, now=datetime(2030, 1, 1)) == 0
        subscription_service.extend(db, active_subscription.id, 1, actor_id=admin.id)
        assert subscription_service.expire_due_subscriptions(db, now=datetime(2024, 2, 1)) == 0
        db.refresh(active_subscription)
        assert active_subscription.status == "active"

    def test_every_transition_appends_ordered_event(self, db, active_subscription, admin):
        subscription_service.cancel(db, active_subscription.id, actor_id=admin.id)
        subscription_service.reactivate(db, active_subscription.id, actor_id=admin.id)

        events = _events(db, active_subscription.id)
        assert [e.seq for e in events] == list(range(1, len(events) + 1))
        assert [e.action for e in events][-2:] == ["cancelled", "reactivated"]
        assert events[-1].from_status == "cancelled"
        assert events[-1].to_status == "active"
