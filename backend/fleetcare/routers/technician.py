"""技術者: 担当購読一覧"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.schemas.subscription import AssignmentInfo, SubscriptionInfo, VehicleInfo
from fleetcare.services import assignment_service, subscription_service, visit_service
from fleetcare.routers.deps import Identity, require_technician

router = APIRouter(prefix="/api/technician", tags=["technician"])


@router.get("/assignments")
async def my_assignments(
    identity: Identity = Depends(require_technician),
    db: Session = Depends(get_db),
):
    """担当中の購読 (支払い確認済みのみ)"""
    result = []
    for a in assignment_service.list_technician_assignments(db, identity.user_id):
        sub = subscription_service.get_subscription(db, a.subscription_id)
        current = visit_service.get_in_progress_visit(db, sub.id)
        result.append({
            "assignment": AssignmentInfo.model_validate(a),
            "subscription": SubscriptionInfo.model_validate(sub),
            "vehicles": [VehicleInfo.model_validate(v) for v in subscription_service.list_vehicles(db, sub.id)],
            "in_progress_visit_id": current.id if current else None,
        })
    return result
