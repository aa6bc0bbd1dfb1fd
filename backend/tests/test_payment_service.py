import re
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from fleetcare.core.exceptions import (
    EvidenceAlreadySubmitted,
    InvalidRejectionReason,
    InvalidTransition,
    PermissionDenied,
)
from fleetcare.models.invoice import Invoice
from fleetcare.models.payment import PaymentRecord
from fleetcare.models.system_log import SystemLog
from fleetcare.models.vehicle import Vehicle
from fleetcare.services import payment_service, subscription_service

from conftest import make_plan, make_user


class TestPaymentEvidence:
    def test_submit_marks_awaiting_verification(self, db, pending_subscription, customer):
        sub = payment_service.submit_payment_evidence(
            db, pending_subscription.id, customer.id, "bank_transfer", "TX123",
        )
        assert sub.payment_method == "bank_transfer"
        assert sub.payment_reference == "TX123"
        assert sub.awaiting_verification is True
        assert sub.status == "pending_payment"

        queue = subscription_service.list_subscriptions(db, awaiting_verification=True)
        assert [s.id for s in queue] == [sub.id]

    def test_second_submission_is_rejected(self, db, pending_subscription, customer):
        payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "cash", "R-1")
        with pytest.raises(EvidenceAlreadySubmitted):
            payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "cash", "R-2")
        db.refresh(pending_subscription)
        assert pending_subscription.payment_reference == "R-1"

    def test_only_owner_may_submit(self, db, pending_subscription):
        other = make_user(db, "customer", "other@example.com")
        with pytest.raises(PermissionDenied):
            payment_service.submit_payment_evidence(db, pending_subscription.id, other.id, "cash", "R-1")

    def test_not_allowed_after_activation(self, db, active_subscription, customer):
        with pytest.raises(InvalidTransition):
            payment_service.submit_payment_evidence(db, active_subscription.id, customer.id, "cash", "R-9")

    def test_rejected_evidence_can_be_resubmitted(self, db, pending_subscription, customer, admin):
        payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "cash", "R-1")
        sub = payment_service.reject_payment_evidence(db, pending_subscription.id, admin.id, "receipt unreadable")
        assert sub.payment_method is None
        assert sub.awaiting_verification is False

        sub = payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "cash", "R-2")
        assert sub.payment_reference == "R-2"

    def test_reject_requires_reason_and_evidence(self, db, pending_subscription, admin):
        with pytest.raises(InvalidRejectionReason):
            payment_service.reject_payment_evidence(db, pending_subscription.id, admin.id, "  ")
        with pytest.raises(InvalidTransition):
            payment_service.reject_payment_evidence(db, pending_subscription.id, admin.id, "nothing to reject")


class TestConfirmPayment:
    def test_confirm_activates_and_creates_records(self, db, pending_subscription, customer, admin):
        payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "bank_transfer", "TX123")

        result = payment_service.confirm_payment(db, pending_subscription.id, admin.id,
                                                 now=datetime(2024, 1, 20, 10, 0))

        assert result.activated is True
        assert result.already_confirmed is False
        assert result.warnings == []
        assert result.subscription.status == "active"
        assert result.subscription.payment_confirmed is True

        assert result.payment.amount == 100
        assert result.payment.currency == "USD"
        assert result.payment.payment_method == "bank_transfer"
        assert result.payment.payment_reference == "TX123"
        assert result.payment.payment_status == "completed"

        invoice = result.invoice
        assert re.fullmatch(r"INV-20240120-[0-9A-F]{6}", invoice.invoice_number)
        assert invoice.amount == 100
        assert invoice.status == "paid"
        assert invoice.payment_reference == "TX123"
        assert invoice.service_details == "Subscription Payment - Basic Care (monthly)"
        assert invoice.vehicle_info == {"brand": "Toyota", "model": "Corolla", "year": 2019}
        assert invoice.customer_name == "Dana Customer"
        assert invoice.customer_phone == "+1-555-0100"
        assert invoice.reconciliation_key == result.payment.reconciliation_key

        vehicles = db.query(Vehicle).filter(Vehicle.subscription_id == pending_subscription.id).all()
        assert all(v.subscription_status == "active" for v in vehicles)

    def test_double_confirmation_creates_records_once(self, db, pending_subscription, customer, admin):
        payment_service.submit_payment_evidence(db, pending_subscription.id, customer.id, "bank_transfer", "TX123")
        first = payment_service.confirm_payment(db, pending_subscription.id, admin.id)
        second = payment_service.confirm_payment(db, pending_subscription.id, admin.id)

        assert first.activated is True
        assert second.activated is False
        assert second.already_confirmed is True
        assert second.payment is None and second.invoice is None
        assert db.query(PaymentRecord).count() == 1
        assert db.query(Invoice).count() == 1

    def test_free_plan_gets_invoice_without_payment(self, db, admin):
        free = make_plan(db, price=0, plan_name="Starter")
        owner = make_user(db, "customer", "free@example.com")
        sub = subscription_service.create_subscription(db, owner.id, free.id, vehicle_count=1)

        result = payment_service.confirm_payment(db, sub.id, admin.id)

        assert result.activated is True
        assert result.payment is None
        assert result.invoice.amount == 0
        assert result.invoice.vehicle_info is None
        assert db.query(PaymentRecord).count() == 0

    def test_cannot_confirm_cancelled(self, db, active_subscription, admin):
        subscription_service.cancel(db, active_subscription.id, actor_id=admin.id)
        with pytest.raises(InvalidTransition):
            payment_service.confirm_payment(db, active_subscription.id, admin.id)

    def test_payment_record_failure_keeps_activation(self, db, pending_subscription, admin, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT INTO payments", {}, Exception("disk full"))

        monkeypatch.setattr(payment_service, "_create_payment_record", boom)

        result = payment_service.confirm_payment(db, pending_subscription.id, admin.id)

        assert result.activated is True
        assert result.payment is None
        assert result.invoice is not None
        assert len(result.warnings) == 1
        db.refresh(pending_subscription)
        assert pending_subscription.status == "active"

        log = db.query(SystemLog).one()
        assert log.event_type == "payment_creation_failed"
        assert log.subscription_id == pending_subscription.id

    def test_invoice_failure_keeps_activation(self, db, pending_subscription, admin, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT INTO invoices", {}, Exception("lock wait timeout"))

        monkeypatch.setattr(payment_service, "_create_invoice", boom)

        result = payment_service.confirm_payment(db, pending_subscription.id, admin.id)

        assert result.activated is True
        assert result.payment is not None
        assert result.invoice is None
        assert len(result.warnings) == 1
        db.refresh(pending_subscription)
        assert pending_subscription.status == "active"
        assert pending_subscription.payment_confirmed is True

        log = db.query(SystemLog).one()
        assert log.event_type == "invoice_creation_failed"
        assert log.subscription_id == pending_subscription.id
        assert db.query(Invoice).count() == 0

    def test_invoice_number_collision_is_renumbered(self, db, active_subscription, plan, admin, monkeypatch):
        taken = db.query(Invoice).one().invoice_number
        other = make_user(db, "customer", "second@example.com")
        sub = subscription_service.create_subscription(db, other.id, plan.id, vehicle_count=1)

        numbers = iter([taken, "INV-20240115-BBBBBB"])
        monkeypatch.setattr(payment_service, "generate_invoice_number", lambda now=None: next(numbers))

        result = payment_service.confirm_payment(db, sub.id, admin.id)

        assert result.warnings == []
        assert result.invoice.invoice_number == "INV-20240115-BBBBBB"
        assert db.query(Invoice).count() == 2

    def test_invoice_numbering_gives_up_after_attempts(self, db, active_subscription, plan, admin, monkeypatch):
        taken = db.query(Invoice).one().invoice_number
        other = make_user(db, "customer", "third@example.com")
        sub = subscription_service.create_subscription(db, other.id, plan.id, vehicle_count=1)

        calls = []

        def always_taken(now=None):
            calls.append(now)
            return taken

        monkeypatch.setattr(payment_service, "generate_invoice_number", always_taken)

        result = payment_service.confirm_payment(db, sub.id, admin.id)

        assert len(calls) == payment_service.INVOICE_NUMBER_ATTEMPTS
        assert result.activated is True
        assert result.invoice is None
        assert len(result.warnings) == 1
        assert db.query(SystemLog).one().event_type == "invoice_creation_failed"
        assert db.query(Invoice).filter(Invoice.subscription_id == sub.id).count() == 0

    def test_retry_fills_missing_records_once(self, db, pending_subscription, admin, monkeypatch):
        original = payment_service._create_payment_record

        def boom(*args, **kwargs):
            raise OperationalError("INSERT INTO payments", {}, Exception("timeout"))

        monkeypatch.setattr(payment_service, "_create_payment_record", boom)
        payment_service.confirm_payment(db, pending_subscription.id, admin.id)
        monkeypatch.setattr(payment_service, "_create_payment_record", original)

        assert payment_service.retry_missing_financial_records(db) == {"payments": 1, "invoices": 0, "failed": 0}
        assert payment_service.retry_missing_financial_records(db) == {"payments": 0, "invoices": 0, "failed": 0}
        assert db.query(PaymentRecord).count() == 1
        assert db.query(Invoice).count() == 1

    def test_invoices_listed_per_customer(self, db, active_subscription, customer):
        invoices = payment_service.list_invoices(db, customer_id=customer.id)
        assert len(invoices) == 1
        assert payment_service.list_invoices(db, customer_id=customer.id + 999) == []
        assert len(payment_service.list_payments(db, subscription_id=active_subscription.id)) == 1


def test_invoice_number_format():
    number = payment_service.generate_invoice_number(datetime(2024, 3, 5))
    assert re.fullmatch(r"INV-20240305-[0-9A-F]{6}", number)
