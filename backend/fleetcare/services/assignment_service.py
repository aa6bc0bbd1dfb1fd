"""技術者割当

購読ごとに active な割当は常に1件以下。新しい割当は既存の active を ended にしてから作成する
(後勝ち)。ended になった行もメモごと残す。
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleetcare.core.database import utcnow
from fleetcare.core.exceptions import InvalidTechnician, InvalidTransition, NoActiveAssignment
from fleetcare.models.assignment import Assignment
from fleetcare.models.subscription import Subscription
from fleetcare.models.user import User
from fleetcare.services import event_service, subscription_service
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)

ASSIGN_ATTEMPTS = 2


def get_active_assignment(db: Session, subscription_id: int) -> Optional[Assignment]:
    return db.query(Assignment).filter(
        Assignment.subscription_id == subscription_id,
        Assignment.status == "active",
    ).first()


def list_assignment_history(db: Session, subscription_id: int) -> list[Assignment]:
    return db.query(Assignment).filter(
        Assignment.subscription_id == subscription_id,
    ).order_by(Assignment.assigned_at.desc(), Assignment.id.desc()).all()


def list_technician_assignments(db: Session, technician_id: int) -> list[Assignment]:
    """技術者の担当一覧 (支払い確認済みの購読のみ)"""
    return (
        db.query(Assignment)
        .join(Subscription, Assignment.subscription_id == Subscription.id)
        .filter(
            Assignment.technician_id == technician_id,
            Assignment.status == "active",
            Subscription.payment_confirmed == True,
            Subscription.status != "pending_payment",
        )
        .order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
        .all()
    )


def _end_active_assignments(db: Session, subscription_id: int, actor_id: Optional[int], now: datetime) -> int:
    """active な割当を ended にする (コミットは呼び出し側)"""
    actives = db.query(Assignment).filter(
        Assignment.subscription_id == subscription_id,
        Assignment.status == "active",
    ).all()
    for a in actives:
        a.status = "ended"
        a.active_slot = None
        a.ended_at = now
        a.ended_by = actor_id
        event_service.record_transition(
            db, "assignment", a.id, "ended", "active", "ended",
            actor_id=actor_id, subscription_id=subscription_id,
            details={"technician_id": a.technician_id},
        )
    if actives:
        # 新規INSERTより先にスロットを空ける
        db.flush()
    return len(actives)


def assign_technician(
    db: Session,
    subscription_id: int,
    technician_id: int,
    admin_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Assignment:
    """技術者を割り当てる (支払い確認済みの購読のみ)"""
    now = now or utcnow()

    for attempt in range(1, ASSIGN_ATTEMPTS + 1):
        sub = subscription_service.get_subscription(db, subscription_id, for_update=True)
        subscription_service.require_payment_confirmed(sub)

        technician = db.query(User).filter(
            User.id == technician_id,
            User.role == "technician",
            User.is_active == True,
        ).first()
        if not technician:
            raise InvalidTechnician(technician_id=technician_id)

        try:
            superseded = _end_active_assignments(db, sub.id, admin_id, now)
            assignment = Assignment(
                subscription_id=sub.id,
                technician_id=technician_id,
                assigned_by=admin_id,
                notes=notes,
                status="active",
                active_slot=1,
                assigned_at=now,
            )
            db.add(assignment)
            db.flush()
            event_service.record_transition(
                db, "assignment", assignment.id, "assigned", None, "active",
                actor_id=admin_id, subscription_id=sub.id,
                details={"technician_id": technician_id, "superseded": superseded},
            )
            db.commit()
        except IntegrityError:
            # 別の管理者が同時に割り当てた → 後勝ちでやり直す
            db.rollback()
            logger.warning(
                f"割当競合: subscription_id={subscription_id}, technician_id={technician_id}, "
                f"attempt={attempt}/{ASSIGN_ATTEMPTS}"
            )
            continue

        db.refresh(assignment)
        logger.info(
            f"技術者割当: subscription_id={sub.id}, technician_id={technician_id}, "
            f"assignment_id={assignment.id}, superseded={superseded}"
        )
        return assignment

    raise InvalidTransition("割当が同時に更新されました。再度お試しください", subscription_id=subscription_id)


def revoke_assignment(
    db: Session,
    subscription_id: int,
    admin_id: int,
    now: Optional[datetime] = None,
) -> Assignment:
    """担当解除 (管理者による取り消し)"""
    now = now or utcnow()
    subscription_service.get_subscription(db, subscription_id, for_update=True)
    active = get_active_assignment(db, subscription_id)
    if not active:
        raise NoActiveAssignment("担当技術者が割り当てられていません", subscription_id=subscription_id)

    _end_active_assignments(db, subscription_id, admin_id, now)
    db.commit()
    db.refresh(active)
    logger.info(f"担当解除: subscription_id={subscription_id}, assignment_id={active.id}")
    return active
