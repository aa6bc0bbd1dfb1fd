"""管理画面: 購読管理 (支払い確認・状態変更・技術者割当)"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.schemas.subscription import (
    AssignmentInfo,
    AssignRequest,
    ExtendRequest,
    PaymentConfirmationResponse,
    PaymentInfo,
    RejectPaymentRequest,
    SubscriptionInfo,
)
from fleetcare.services import assignment_service, payment_service, subscription_service
from fleetcare.routers.deps import Identity, require_admin

router = APIRouter(prefix="/api/admin/subscriptions", tags=["admin-subscriptions"])


@router.get("", response_model=list[SubscriptionInfo])
async def list_subscriptions(
    status: Optional[str] = None,
    awaiting_verification: Optional[bool] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """購読一覧 (ステータス / 支払い確認待ちで絞り込み)"""
    return subscription_service.list_subscriptions(db, status=status, awaiting_verification=awaiting_verification)


@router.post("/{subscription_id}/confirm-payment", response_model=PaymentConfirmationResponse)
async def confirm_payment(
    subscription_id: int,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """支払い確認 → 購読有効化・入金記録・請求書発行

    入金記録・請求書の作成失敗は warnings で返す (有効化は確定済み)。
    """
    result = payment_service.confirm_payment(db, subscription_id, admin_id=admin.user_id)
    return PaymentConfirmationResponse.model_validate(result)


@router.post("/{subscription_id}/reject-payment", response_model=SubscriptionInfo)
async def reject_payment(
    subscription_id: int,
    req: RejectPaymentRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    return payment_service.reject_payment_evidence(db, subscription_id, admin_id=admin.user_id, reason=req.reason)


@router.get("/{subscription_id}/payments", response_model=list[PaymentInfo])
async def list_payments(subscription_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    subscription_service.get_subscription(db, subscription_id)
    return payment_service.list_payments(db, subscription_id=subscription_id)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionInfo)
async def cancel(subscription_id: int, db: Session = Depends(get_db), admin: Identity = Depends(require_admin)):
    return subscription_service.cancel(db, subscription_id, actor_id=admin.user_id)


@router.post("/{subscription_id}/reactivate", response_model=SubscriptionInfo)
async def reactivate(subscription_id: int, db: Session = Depends(get_db), admin: Identity = Depends(require_admin)):
    return subscription_service.reactivate(db, subscription_id, actor_id=admin.user_id)


@router.post("/{subscription_id}/extend", response_model=SubscriptionInfo)
async def extend(
    subscription_id: int,
    req: ExtendRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    return subscription_service.extend(db, subscription_id, req.months, actor_id=admin.user_id)


@router.post("/{subscription_id}/renew", response_model=SubscriptionInfo)
async def renew(subscription_id: int, db: Session = Depends(get_db), admin: Identity = Depends(require_admin)):
    return subscription_service.renew(db, subscription_id, actor_id=admin.user_id)


# --- 技術者割当 ---

@router.post("/{subscription_id}/assign", response_model=AssignmentInfo)
async def assign_technician(
    subscription_id: int,
    req: AssignRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """技術者割当 (既存の担当は終了して置き換え)"""
    return assignment_service.assign_technician(
        db, subscription_id, req.technician_id, admin_id=admin.user_id, notes=req.notes,
    )


@router.post("/{subscription_id}/revoke-assignment", response_model=AssignmentInfo)
async def revoke_assignment(
    subscription_id: int,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    return assignment_service.revoke_assignment(db, subscription_id, admin_id=admin.user_id)


@router.get("/{subscription_id}/assignment")
async def get_assignment(subscription_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    """現在の担当と割当履歴"""
    subscription_service.get_subscription(db, subscription_id)
    active = assignment_service.get_active_assignment(db, subscription_id)
    return {
        "active": AssignmentInfo.model_validate(active) if active else None,
        "history": [
            AssignmentInfo.model_validate(a)
            for a in assignment_service.list_assignment_history(db, subscription_id)
        ],
    }
