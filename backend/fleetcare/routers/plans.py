"""公開プランAPI"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import NotFound
from fleetcare.models.plan import Plan
from fleetcare.schemas.plan import PlanInfo

router = APIRouter(prefix="/api/plans", tags=["plans"])


@router.get("", response_model=list[PlanInfo])
async def list_public_plans(db: Session = Depends(get_db)):
    """公開プラン一覧 (アクティブのみ)"""
    return db.query(Plan).filter(Plan.is_active == True).order_by(Plan.price.asc(), Plan.id.asc()).all()


@router.get("/{plan_id}", response_model=PlanInfo)
async def get_plan_detail(plan_id: int, db: Session = Depends(get_db)):
    plan = db.query(Plan).filter(Plan.id == plan_id, Plan.is_active == True).first()
    if not plan:
        raise NotFound("プランが見つかりません", plan_id=plan_id)
    return plan
