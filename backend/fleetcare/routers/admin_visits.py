"""管理画面: 訪問レポートの確認"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.schemas.visit import RejectVisitRequest, VisitInfo
from fleetcare.services import visit_service
from fleetcare.routers.deps import Identity, require_admin

router = APIRouter(prefix="/api/admin/visits", tags=["admin-visits"])


@router.get("", response_model=list[VisitInfo])
async def list_visits(
    status: Optional[str] = "pending_confirmation",
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """確認待ちキュー (status で切替)"""
    return visit_service.list_visits(db, status=status)


@router.post("/{visit_id}/confirm", response_model=VisitInfo)
async def confirm_visit(visit_id: int, db: Session = Depends(get_db), admin: Identity = Depends(require_admin)):
    return visit_service.confirm_visit(db, visit_id, admin_id=admin.user_id)


@router.post("/{visit_id}/reject", response_model=VisitInfo)
async def reject_visit(
    visit_id: int,
    req: RejectVisitRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """差し戻し (終端。技術者は新しい訪問を開始する)"""
    return visit_service.reject_visit(db, visit_id, admin_id=admin.user_id, reason=req.reason)
