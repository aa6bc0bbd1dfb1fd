"""購読ルーター (顧客): 申込・参照・支払い情報送信"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.rate_limit import limiter, PAYMENT_EVIDENCE_RATE_LIMIT, SUBSCRIBE_RATE_LIMIT
from fleetcare.schemas.subscription import (
    InvoiceInfo,
    PaymentEvidenceRequest,
    SubscribeRequest,
    SubscriptionInfo,
    VehicleInfo,
)
from fleetcare.services import assignment_service, payment_service, subscription_service
from fleetcare.routers.deps import Identity, get_visible_subscription, require_customer, require_login

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionInfo)
@limiter.limit(SUBSCRIBE_RATE_LIMIT)
async def subscribe(
    request: Request,
    req: SubscribeRequest,
    identity: Identity = Depends(require_customer),
    db: Session = Depends(get_db),
):
    """購読申込 (支払い待ちで作成)"""
    return subscription_service.create_subscription(
        db,
        customer_id=identity.user_id,
        plan_id=req.plan_id,
        vehicle_count=req.vehicle_count,
        vehicles=[v.model_dump() for v in req.vehicles],
        auto_renew=req.auto_renew,
    )


@router.get("/mine", response_model=list[SubscriptionInfo])
async def my_subscriptions(
    identity: Identity = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return subscription_service.list_customer_subscriptions(db, identity.user_id)


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: int,
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
):
    """購読詳細 (車両・担当技術者・請求書)"""
    sub = get_visible_subscription(db, identity, subscription_id)
    plan = subscription_service.get_plan(db, sub.plan_id)
    assignment = assignment_service.get_active_assignment(db, sub.id)

    return {
        "subscription": SubscriptionInfo.model_validate(sub),
        "plan_name": plan.plan_name if plan else None,
        "billing_cycle": plan.billing_cycle if plan else None,
        "vehicles": [VehicleInfo.model_validate(v) for v in subscription_service.list_vehicles(db, sub.id)],
        "technician_id": assignment.technician_id if assignment else None,
        "invoices": [
            InvoiceInfo.model_validate(i)
            for i in payment_service.list_invoices(db, subscription_id=sub.id)
        ] if identity.role != "technician" else [],
    }


@router.post("/{subscription_id}/payment-evidence", response_model=SubscriptionInfo)
@limiter.limit(PAYMENT_EVIDENCE_RATE_LIMIT)
async def submit_payment_evidence(
    request: Request,
    subscription_id: int,
    req: PaymentEvidenceRequest,
    identity: Identity = Depends(require_customer),
    db: Session = Depends(get_db),
):
    """支払い方法・参照番号の送信 (管理者の確認待ちになる)"""
    return payment_service.submit_payment_evidence(
        db,
        subscription_id=subscription_id,
        customer_id=identity.user_id,
        method=req.payment_method,
        reference=req.payment_reference,
    )
