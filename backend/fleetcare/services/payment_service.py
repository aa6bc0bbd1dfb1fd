"""支払い確認と請求書発行

オフライン決済 (振込・現金) 前提:
顧客が支払い情報を送信 → 管理者が確認 → 購読有効化 → 入金記録・請求書を作成。

有効化は条件付きUPDATEで1回だけ成立する。入金記録・請求書は有効化コミット後の
ベストエフォート処理で、失敗しても有効化は取り消さない (system_logs に記録し、
スケジューラが reconciliation_key 単位で再作成する)。
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fleetcare.core.config import settings
from fleetcare.core.database import utcnow
from fleetcare.core.exceptions import (
    EvidenceAlreadySubmitted,
    InvalidRejectionReason,
    InvalidTransition,
    PermissionDenied,
    ValidationFailed,
)
from fleetcare.models.invoice import Invoice
from fleetcare.models.payment import PaymentRecord
from fleetcare.models.plan import Plan
from fleetcare.models.subscription import Subscription
from fleetcare.models.user import User
from fleetcare.models.vehicle import Vehicle
from fleetcare.services import event_service, subscription_service
from fleetcare.services.log_service import write_system_log
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)

INVOICE_NUMBER_ATTEMPTS = 3


@dataclass
class PaymentConfirmation:
    subscription: Subscription
    activated: bool
    already_confirmed: bool = False
    payment: Optional[PaymentRecord] = None
    invoice: Optional[Invoice] = None
    warnings: list[str] = field(default_factory=list)


# =========================================================
# 支払い情報 (顧客)
# =========================================================

def submit_payment_evidence(
    db: Session,
    subscription_id: int,
    customer_id: int,
    method: str,
    reference: str,
    now: Optional[datetime] = None,
) -> Subscription:
    """支払い方法と振込番号等を送信 → 管理者の確認待ち"""
    method = (method or "").strip()
    reference = (reference or "").strip()
    if not method or not reference:
        raise ValidationFailed("支払い方法と参照番号を入力してください")
    now = now or utcnow()

    sub = subscription_service.get_subscription(db, subscription_id, for_update=True)
    if sub.customer_id != customer_id:
        raise PermissionDenied(subscription_id=subscription_id)

    count = db.query(Subscription).filter(
        Subscription.id == sub.id,
        Subscription.status == "pending_payment",
        Subscription.payment_confirmed == False,
        Subscription.payment_method == None,
    ).update({
        "payment_method": method,
        "payment_reference": reference,
        "last_payment_date": now,
    }, synchronize_session=False)

    db.refresh(sub)
    if count == 0:
        if sub.status == "pending_payment" and sub.payment_method:
            raise EvidenceAlreadySubmitted(subscription_id=sub.id)
        raise InvalidTransition(
            f"{sub.status} の購読には支払い情報を送信できません",
            subscription_id=sub.id,
            status=sub.status,
        )

    event_service.record_transition(
        db, "subscription", sub.id, "payment_evidence_submitted", "pending_payment", "pending_payment",
        actor_id=customer_id, subscription_id=sub.id, details={"payment_method": method},
    )
    db.commit()
    db.refresh(sub)
    logger.info(f"支払い情報送信: subscription_id={sub.id}, method={method}")
    return sub


def reject_payment_evidence(
    db: Session,
    subscription_id: int,
    admin_id: int,
    reason: str,
) -> Subscription:
    """確認できなかった支払い情報を差し戻す (顧客は再送信できる)"""
    reason = (reason or "").strip()
    if not reason:
        raise InvalidRejectionReason(subscription_id=subscription_id)

    sub = subscription_service.get_subscription(db, subscription_id, for_update=True)
    count = db.query(Subscription).filter(
        Subscription.id == sub.id,
        Subscription.status == "pending_payment",
        Subscription.payment_confirmed == False,
        Subscription.payment_method != None,
    ).update({"payment_method": None, "payment_reference": None}, synchronize_session=False)

    db.refresh(sub)
    if count == 0:
        raise InvalidTransition(
            "確認待ちの支払い情報がありません",
            subscription_id=sub.id,
            status=sub.status,
        )

    event_service.record_transition(
        db, "subscription", sub.id, "payment_evidence_rejected", "pending_payment", "pending_payment",
        actor_id=admin_id, subscription_id=sub.id, details={"reason": reason},
    )
    db.commit()
    db.refresh(sub)
    logger.info(f"支払い情報差し戻し: subscription_id={sub.id}, admin_id={admin_id}")
    return sub


# =========================================================
# 支払い確認 (管理者)
# =========================================================

def reconciliation_key(sub: Subscription) -> str:
    """支払い確認イベント単位のキー (入金記録・請求書の重複防止)"""
    return f"{sub.id}:{sub.payment_confirmed_at.isoformat()}"


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    """INV-YYYYMMDD-XXXXXX"""
    now = now or utcnow()
    return f"INV-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def _create_payment_record(db: Session, sub: Subscription, plan: Plan) -> PaymentRecord:
    payment = PaymentRecord(
        customer_id=sub.customer_id,
        subscription_id=sub.id,
        amount=plan.price,
        currency=settings.INVOICE_CURRENCY,
        payment_method=sub.payment_method or "manual",
        payment_status="completed",
        payment_type="subscription",
        payment_reference=sub.payment_reference or "",
        reconciliation_key=reconciliation_key(sub),
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def _create_invoice(db: Session, sub: Subscription, plan: Plan, now: datetime) -> Invoice:
    customer = db.query(User).filter(User.id == sub.customer_id).first()
    vehicle = db.query(Vehicle).filter(
        Vehicle.subscription_id == sub.id,
    ).order_by(Vehicle.id).first()

    vehicle_info = None
    if vehicle:
        vehicle_info = {"brand": vehicle.make, "model": vehicle.model, "year": vehicle.year}

    for attempt in range(1, INVOICE_NUMBER_ATTEMPTS + 1):
        invoice = Invoice(
            invoice_number=generate_invoice_number(now),
            customer_id=sub.customer_id,
            subscription_id=sub.id,
            payment_type="subscription",
            amount=plan.price,
            subtotal=plan.price,
            currency=settings.INVOICE_CURRENCY,
            issue_date=now,
            payment_date=sub.payment_confirmed_at or now,
            status="paid",
            payment_reference=sub.payment_reference,
            vehicle_info=vehicle_info,
            service_details=f"Subscription Payment - {plan.plan_name} ({plan.billing_cycle})",
            customer_name=customer.full_name if customer else None,
            customer_phone=customer.phone if customer else None,
            reconciliation_key=reconciliation_key(sub),
        )
        db.add(invoice)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # reconciliation_key の衝突なら作成済み。番号の衝突なら採番し直す
            if _find_invoice(db, reconciliation_key(sub)):
                raise
            logger.warning(f"請求書番号衝突: subscription_id={sub.id}, attempt={attempt}")
            continue
        db.refresh(invoice)
        return invoice

    raise InvalidTransition("請求書番号を採番できませんでした", subscription_id=sub.id)


def _find_payment(db: Session, key: str) -> Optional[PaymentRecord]:
    return db.query(PaymentRecord).filter(PaymentRecord.reconciliation_key == key).first()


def _find_invoice(db: Session, key: str) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.reconciliation_key == key).first()


def _record_failure(db: Session, sub: Subscription, admin_id: Optional[int], record: str, error: Exception) -> str:
    logger.error(
        f"{record}作成失敗: subscription_id={sub.id}",
        extra={"extra_data": {"reconciliation_key": reconciliation_key(sub), "error": str(error)}},
    )
    write_system_log(
        db,
        level="error",
        event_type=f"{record}_creation_failed",
        message=f"{record} の作成に失敗しました。自動再作成を待つか手動で作成してください",
        subscription_id=sub.id,
        user_id=admin_id,
        details={"reconciliation_key": reconciliation_key(sub), "error": str(error)},
    )
    return f"{record} の作成に失敗しました。購読は有効化済みです"


def confirm_payment(
    db: Session,
    subscription_id: int,
    admin_id: int,
    now: Optional[datetime] = None,
) -> PaymentConfirmation:
    """支払い確認: 購読有効化 → 車両有効化 → 入金記録 → 請求書"""
    now = now or utcnow()

    # 1. 有効化 (二重確認のガード)
    sub = subscription_service.get_subscription(db, subscription_id, for_update=True)
    activated = subscription_service.activate(db, sub.id, actor_id=admin_id, now=now, commit=False)
    if not activated:
        db.rollback()
        db.refresh(sub)
        return PaymentConfirmation(subscription=sub, activated=False, already_confirmed=True)

    # 2. 車両 (有効化と同じトランザクション)
    db.query(Vehicle).filter(
        Vehicle.subscription_id == sub.id,
    ).update({"subscription_status": "active"}, synchronize_session=False)
    db.commit()
    db.refresh(sub)
    logger.info(f"支払い確認: subscription_id={sub.id}, admin_id={admin_id}")

    result = PaymentConfirmation(subscription=sub, activated=True)
    plan = subscription_service.get_plan(db, sub.plan_id)

    # 3. 入金記録 (無料プランは作らない)
    if plan.price > 0:
        try:
            result.payment = _create_payment_record(db, sub, plan)
        except SQLAlchemyError as e:
            db.rollback()
            result.warnings.append(_record_failure(db, sub, admin_id, "payment", e))

    # 4. 請求書 (3 の成否に関わらず作る)
    try:
        result.invoice = _create_invoice(db, sub, plan, now)
    except (SQLAlchemyError, InvalidTransition) as e:
        db.rollback()
        result.warnings.append(_record_failure(db, sub, admin_id, "invoice", e))

    db.refresh(sub)
    return result


def retry_missing_financial_records(db: Session, now: Optional[datetime] = None) -> dict:
    """支払い確認済みで入金記録・請求書が欠けている購読を補完する (スケジューラ)"""
    now = now or utcnow()
    created = {"payments": 0, "invoices": 0, "failed": 0}

    subs = db.query(Subscription).filter(
        Subscription.payment_confirmed == True,
        Subscription.payment_confirmed_at != None,
    ).all()

    for sub in subs:
        key = reconciliation_key(sub)
        plan = subscription_service.get_plan(db, sub.plan_id)
        if not plan:
            continue

        if plan.price > 0 and not _find_payment(db, key):
            try:
                _create_payment_record(db, sub, plan)
                created["payments"] += 1
                logger.info(f"入金記録を補完: subscription_id={sub.id}")
            except SQLAlchemyError as e:
                db.rollback()
                created["failed"] += 1
                logger.error(f"入金記録の補完失敗: subscription_id={sub.id}, error={e}")

        if not _find_invoice(db, key):
            try:
                _create_invoice(db, sub, plan, now)
                created["invoices"] += 1
                logger.info(f"請求書を補完: subscription_id={sub.id}")
            except (SQLAlchemyError, InvalidTransition) as e:
                db.rollback()
                created["failed"] += 1
                logger.error(f"請求書の補完失敗: subscription_id={sub.id}, error={e}")

    return created


# =========================================================
# 参照
# =========================================================

def list_invoices(
    db: Session,
    customer_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
) -> list[Invoice]:
    q = db.query(Invoice)
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)
    if subscription_id is not None:
        q = q.filter(Invoice.subscription_id == subscription_id)
    return q.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()


def list_payments(db: Session, subscription_id: Optional[int] = None) -> list[PaymentRecord]:
    q = db.query(PaymentRecord)
    if subscription_id is not None:
        q = q.filter(PaymentRecord.subscription_id == subscription_id)
    return q.order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc()).all()
