"""購読ビジネスロジック

購読ステータスの遷移はすべてこのモジュールを経由する。
遷移は「元ステータスを条件にした UPDATE」で行い、件数0なら競合として扱う。
"""
import re
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from fleetcare.core.database import utcnow
from fleetcare.core.exceptions import (
    ActiveSubscriptionExists,
    DuplicatePendingSubscription,
    InvalidMonths,
    InvalidPlan,
    InvalidTransition,
    InvalidVehicleCount,
    InvalidVin,
    NotFound,
    SubscriptionNotPayable,
)
from fleetcare.models.plan import Plan
from fleetcare.models.subscription import Subscription
from fleetcare.models.user import User
from fleetcare.models.vehicle import Vehicle
from fleetcare.services import event_service
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)

# 管理者操作で active に戻せるステータス
REVIVABLE_STATUSES = ("cancelled", "expired")
# 延長・更新の対象 (pending_payment は支払い確認でのみ有効化する)
EXTENDABLE_STATUSES = ("active", "cancelled", "expired")
MAX_EXTEND_MONTHS = 1200

_VIN_STRIP = re.compile(r"[^A-Z0-9]")


# =========================================================
# 参照
# =========================================================

def get_plan(db: Session, plan_id: int) -> Optional[Plan]:
    return db.query(Plan).filter(Plan.id == plan_id).first()


def get_subscription(db: Session, subscription_id: int, for_update: bool = False) -> Subscription:
    """購読取得。見つからなければ NotFound"""
    q = db.query(Subscription).filter(Subscription.id == subscription_id)
    if for_update:
        q = q.with_for_update()
    sub = q.first()
    if not sub:
        raise NotFound("購読が見つかりません", subscription_id=subscription_id)
    return sub


def list_customer_subscriptions(db: Session, customer_id: int) -> list[Subscription]:
    """顧客の購読一覧 (新しい順)"""
    return db.query(Subscription).filter(
        Subscription.customer_id == customer_id,
    ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()


def list_subscriptions(
    db: Session,
    status: Optional[str] = None,
    awaiting_verification: Optional[bool] = None,
) -> list[Subscription]:
    """管理画面用の購読一覧"""
    q = db.query(Subscription)
    if status:
        q = q.filter(Subscription.status == status)
    if awaiting_verification:
        q = q.filter(
            Subscription.status == "pending_payment",
            Subscription.payment_method != None,
            Subscription.payment_confirmed == False,
        )
    return q.order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()


def list_vehicles(db: Session, subscription_id: int) -> list[Vehicle]:
    return db.query(Vehicle).filter(Vehicle.subscription_id == subscription_id).order_by(Vehicle.id).all()


def is_payment_confirmed(sub: Subscription) -> bool:
    """支払い確認済みか (技術者割当・訪問の前提条件)"""
    return bool(sub.payment_confirmed) and sub.status != "pending_payment"


def require_payment_confirmed(sub: Subscription) -> Subscription:
    """未払い購読を技術者に見せない・割り当てないためのガード"""
    if not is_payment_confirmed(sub):
        raise SubscriptionNotPayable(subscription_id=sub.id, status=sub.status)
    return sub


# =========================================================
# 作成
# =========================================================

def normalize_vin(vin: Optional[str]) -> Optional[str]:
    """VIN正規化: 大文字化・記号除去後に英数字17文字であること (未入力は可)"""
    if not vin:
        return None
    cleaned = _VIN_STRIP.sub("", vin.upper())
    if len(cleaned) != 17:
        raise InvalidVin("VINは17文字で入力してください", vin=vin)
    return cleaned


def create_subscription(
    db: Session,
    customer_id: int,
    plan_id: int,
    vehicle_count: int,
    vehicles: Optional[list[dict]] = None,
    auto_renew: bool = True,
    now: Optional[datetime] = None,
) -> Subscription:
    """購読申込 (pending_payment で作成)"""
    now = now or utcnow()
    vehicles = vehicles or []

    plan = db.query(Plan).filter(Plan.id == plan_id, Plan.is_active == True).first()
    if not plan:
        raise InvalidPlan(plan_id=plan_id)

    if vehicle_count < 1 or vehicle_count > plan.max_vehicles:
        raise InvalidVehicleCount(
            f"車両台数は1〜{plan.max_vehicles}台で指定してください",
            vehicle_count=vehicle_count,
            max_vehicles=plan.max_vehicles,
        )
    normalized = []
    for v in vehicles:
        # メーカー・車種が無い行は登録しない
        if not (v.get("make") and v.get("model")):
            continue
        normalized.append({**v, "vin": normalize_vin(v.get("vin"))})
    if len(normalized) > vehicle_count:
        raise InvalidVehicleCount("登録車両が申込台数を超えています", vehicle_count=vehicle_count)

    # 顧客行をロックして重複申込を直列化
    customer = db.query(User).filter(User.id == customer_id).with_for_update().first()
    if not customer:
        raise NotFound("顧客が見つかりません", customer_id=customer_id)

    existing = db.query(Subscription).filter(
        Subscription.customer_id == customer_id,
        Subscription.status.in_(["pending_payment", "active"]),
    ).all()
    for s in existing:
        if s.status == "pending_payment" and not s.payment_confirmed:
            raise DuplicatePendingSubscription(subscription_id=s.id)
        if s.status == "active" and s.payment_confirmed:
            raise ActiveSubscriptionExists(subscription_id=s.id)

    sub = Subscription(
        customer_id=customer_id,
        plan_id=plan.id,
        status="pending_payment",
        vehicle_count=vehicle_count,
        start_date=now,
        auto_renew=auto_renew,
        payment_confirmed=False,
    )
    db.add(sub)
    db.flush()

    for v in normalized:
        db.add(Vehicle(
            customer_id=customer_id,
            subscription_id=sub.id,
            make=v["make"],
            model=v["model"],
            year=v.get("year"),
            vin=v["vin"],
            license_plate=v.get("license_plate"),
            subscription_status="pending_payment",
        ))

    event_service.record_transition(
        db, "subscription", sub.id, "created", None, "pending_payment",
        actor_id=customer_id, subscription_id=sub.id, details={"plan_id": plan.id},
    )
    db.commit()
    db.refresh(sub)
    logger.info(f"購読申込: subscription_id={sub.id}, customer_id={customer_id}, plan_id={plan.id}")
    return sub


# =========================================================
# 遷移
# =========================================================

def activate(
    db: Session,
    subscription_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> bool:
    """pending_payment → active (支払い確認)

    既に有効化済みなら何もせず False を返す。このメソッドが遷移させた場合のみ True。
    """
    now = now or utcnow()
    count = db.query(Subscription).filter(
        Subscription.id == subscription_id,
        Subscription.status == "pending_payment",
        Subscription.payment_confirmed == False,
    ).update({
        "status": "active",
        "payment_confirmed": True,
        "payment_confirmed_at": now,
        "payment_confirmed_by": actor_id,
        "last_payment_date": now,
    }, synchronize_session=False)

    sub = get_subscription(db, subscription_id)
    db.refresh(sub)

    if count == 0:
        if sub.status == "active" and sub.payment_confirmed:
            logger.info(f"購読有効化スキップ (有効化済み): subscription_id={subscription_id}")
            return False
        raise InvalidTransition(
            f"{sub.status} の購読は有効化できません",
            subscription_id=subscription_id,
            status=sub.status,
        )

    event_service.record_transition(
        db, "subscription", sub.id, "activated", "pending_payment", "active",
        actor_id=actor_id, subscription_id=sub.id,
    )
    if commit:
        db.commit()
        db.refresh(sub)
    logger.info(f"購読有効化: subscription_id={subscription_id}")
    return True


def _transition(
    db: Session,
    sub: Subscription,
    allowed_from: tuple,
    values: dict,
    action: str,
    actor_id: Optional[int],
    details: Optional[dict] = None,
) -> Subscription:
    """元ステータスを条件にした遷移 (競合時は InvalidTransition)"""
    from_status = sub.status
    if from_status not in allowed_from:
        raise InvalidTransition(
            f"{from_status} の購読にはこの操作はできません",
            subscription_id=sub.id,
            status=from_status,
            action=action,
        )

    count = db.query(Subscription).filter(
        Subscription.id == sub.id,
        Subscription.status == from_status,
    ).update(values, synchronize_session=False)
    if count == 0:
        db.rollback()
        raise InvalidTransition("他の操作により購読の状態が変更されました", subscription_id=sub.id)

    event_service.record_transition(
        db, "subscription", sub.id, action, from_status, values.get("status", from_status),
        actor_id=actor_id, subscription_id=sub.id, details=details,
    )
    db.commit()
    db.refresh(sub)
    logger.info(f"購読{action}: subscription_id={sub.id}, {from_status} -> {sub.status}")
    return sub


def cancel(db: Session, subscription_id: int, actor_id: Optional[int] = None) -> Subscription:
    """active → cancelled"""
    sub = get_subscription(db, subscription_id, for_update=True)
    return _transition(db, sub, ("active",), {"status": "cancelled"}, "cancelled", actor_id)


def reactivate(db: Session, subscription_id: int, actor_id: Optional[int] = None) -> Subscription:
    """cancelled | expired → active (日付は変更しない管理者オーバーライド)"""
    sub = get_subscription(db, subscription_id, for_update=True)
    return _transition(db, sub, REVIVABLE_STATUSES, {"status": "active"}, "reactivated", actor_id)


def advance_end_date(base: datetime, months: int, billing_cycle: str) -> datetime:
    """請求サイクルの粒度で月数分進める (月末は丸める)"""
    if billing_cycle == "yearly":
        return base + relativedelta(years=months // 12, months=months % 12)
    return base + relativedelta(months=months)


def one_cycle_ahead(base: datetime, billing_cycle: str) -> datetime:
    if billing_cycle == "yearly":
        return base + relativedelta(years=1)
    return base + relativedelta(months=1)


def extend(
    db: Session,
    subscription_id: int,
    months: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """終了日を months ヶ月延長して active にする"""
    if months is None or months < 1 or months > MAX_EXTEND_MONTHS:
        raise InvalidMonths(months=months)
    now = now or utcnow()

    sub = get_subscription(db, subscription_id, for_update=True)
    plan = get_plan(db, sub.plan_id)
    billing_cycle = plan.billing_cycle if plan else "monthly"

    base = sub.end_date if sub.end_date and sub.end_date > sub.start_date else sub.start_date
    try:
        new_end = advance_end_date(base, months, billing_cycle)
    except (ValueError, OverflowError):
        # 延長後の日付が表現範囲 (9999年) を超える
        db.rollback()
        raise InvalidMonths("延長後の終了日が範囲外です", months=months, end_date=base.isoformat())

    return _transition(
        db, sub, EXTENDABLE_STATUSES,
        {"status": "active", "end_date": new_end, "last_payment_date": now},
        "extended", actor_id,
        details={"months": months, "end_date": new_end.isoformat()},
    )


def renew(
    db: Session,
    subscription_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """開始日を現在にリセットし、1請求サイクル先を終了日にする"""
    now = now or utcnow()
    sub = get_subscription(db, subscription_id, for_update=True)
    plan = get_plan(db, sub.plan_id)
    billing_cycle = plan.billing_cycle if plan else "monthly"
    new_end = one_cycle_ahead(now, billing_cycle)

    return _transition(
        db, sub, EXTENDABLE_STATUSES,
        {"status": "active", "start_date": now, "end_date": new_end, "last_payment_date": now},
        "renewed", actor_id,
        details={"start_date": now.isoformat(), "end_date": new_end.isoformat()},
    )


def expire_due_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """終了日を過ぎた active 購読を expired にする (スケジューラから呼ばれる)"""
    now = now or utcnow()
    due = db.query(Subscription).filter(
        Subscription.status == "active",
        Subscription.end_date != None,
        Subscription.end_date < now,
    ).all()

    expired = 0
    for sub in due:
        count = db.query(Subscription).filter(
            Subscription.id == sub.id,
            Subscription.status == "active",
            Subscription.end_date < now,
        ).update({"status": "expired"}, synchronize_session=False)
        if not count:
            continue
        event_service.record_transition(
            db, "subscription", sub.id, "expired", "active", "expired",
            actor_id=None, subscription_id=sub.id,
            details={"end_date": sub.end_date.isoformat()},
        )
        expired += 1

    if expired:
        db.commit()
        logger.info(f"購読期限切れ: {expired}件")
    return expired
