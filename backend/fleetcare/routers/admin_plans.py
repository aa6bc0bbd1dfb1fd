"""管理画面: プラン管理"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import NotFound
from fleetcare.models.plan import Plan
from fleetcare.schemas.plan import PlanCreate, PlanInfo
from fleetcare.routers.deps import require_admin
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin/plans", tags=["admin-plans"])


@router.get("", response_model=list[PlanInfo])
async def list_plans(db: Session = Depends(get_db), _=Depends(require_admin)):
    """全プラン一覧 (非公開含む)"""
    return db.query(Plan).order_by(Plan.created_at.desc(), Plan.id.desc()).all()


@router.post("", response_model=PlanInfo)
async def create_plan(req: PlanCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    plan = Plan(**req.model_dump())
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info(f"プラン作成: plan_id={plan.id}, name={plan.plan_name}, admin_id={admin.user_id}")
    return plan


@router.put("/{plan_id}", response_model=PlanInfo)
async def update_plan(plan_id: int, req: PlanCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """プラン更新 (既存購読の料金には影響しない。次回の請求書から反映)"""
    plan = db.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise NotFound("プランが見つかりません", plan_id=plan_id)
    for key, value in req.model_dump().items():
        setattr(plan, key, value)
    db.commit()
    db.refresh(plan)
    logger.info(f"プラン更新: plan_id={plan.id}, admin_id={admin.user_id}")
    return plan
