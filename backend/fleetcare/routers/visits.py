"""訪問ルーター: 開始・記録・提出・参照"""
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import NotFound, ValidationFailed
from fleetcare.core.rate_limit import limiter, MEDIA_SUBMIT_RATE_LIMIT
from fleetcare.core.storage import BlobStore, get_blob_store
from fleetcare.schemas.visit import FindingsRequest, InspectionInput, StartVisitRequest, VisitInfo
from fleetcare.services import visit_service
from fleetcare.routers.deps import Identity, get_visible_subscription, require_login, require_technician

router = APIRouter(prefix="/api/visits", tags=["visits"])

_inspections_adapter = TypeAdapter(list[InspectionInput])


def _get_visible_visit(db: Session, identity: Identity, visit_id: int):
    visit = visit_service.get_visit(db, visit_id)
    try:
        get_visible_subscription(db, identity, visit.subscription_id)
    except NotFound:
        raise NotFound("訪問が見つかりません", visit_id=visit_id)
    return visit


@router.get("/subscription/{subscription_id}", response_model=list[VisitInfo])
async def list_subscription_visits(
    subscription_id: int,
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
):
    """購読の訪問履歴 (顧客本人・担当技術者・管理者)"""
    get_visible_subscription(db, identity, subscription_id)
    return visit_service.list_subscription_visits(db, subscription_id)


@router.post("/start", response_model=VisitInfo)
async def start_visit(
    req: StartVisitRequest,
    identity: Identity = Depends(require_technician),
    db: Session = Depends(get_db),
):
    return visit_service.start_visit(db, req.subscription_id, technician_id=identity.user_id)


@router.get("/{visit_id}", response_model=VisitInfo)
async def get_visit(
    visit_id: int,
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
):
    return _get_visible_visit(db, identity, visit_id)


@router.put("/{visit_id}/findings", response_model=VisitInfo)
async def record_findings(
    visit_id: int,
    req: FindingsRequest,
    identity: Identity = Depends(require_technician),
    db: Session = Depends(get_db),
):
    """点検内容の途中保存 (未指定の項目は保持)"""
    data = req.model_dump()
    return visit_service.record_findings(
        db,
        visit_id,
        technician_id=identity.user_id,
        system_findings=data["system_findings"],
        notes=data["notes"],
        work_performed=data["work_performed"],
        recommendations=data["recommendations"],
        duration=data["duration"],
        location=data["location"],
        parts_used=data["parts_used"],
    )


@router.post("/{visit_id}/submit", response_model=VisitInfo)
@limiter.limit(MEDIA_SUBMIT_RATE_LIMIT)
async def submit_visit(
    request: Request,
    visit_id: int,
    inspections: Optional[str] = Form(default=None, description="JSON: [{component, status, notes}]"),
    files: list[UploadFile] = File(default=[]),
    identity: Identity = Depends(require_technician),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """訪問レポート提出 (multipart: inspections + files)"""
    rows = []
    if inspections:
        try:
            rows = [i.model_dump() for i in _inspections_adapter.validate_json(inspections)]
        except PydanticValidationError:
            raise ValidationFailed("点検明細の形式が不正です")

    media = []
    for f in files:
        media.append(visit_service.MediaUpload(
            filename=f.filename or "upload",
            content_type=f.content_type or "application/octet-stream",
            data=await f.read(),
        ))

    return visit_service.submit_visit(
        db,
        visit_id,
        technician_id=identity.user_id,
        inspections=rows,
        media=media,
        blob_store=blob_store,
    )


@router.get("/{visit_id}/report", response_class=PlainTextResponse)
async def visit_report(
    visit_id: int,
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
):
    """訪問レポート (テキスト)"""
    visit = _get_visible_visit(db, identity, visit_id)
    return visit_service.render_visit_report(visit)
