"""訪問ワークフロー

in_progress → pending_confirmation → confirmed | rejected

- 訪問番号は購読ごとに 1 からの連番。作成時に採番し、差し戻しでも再利用しない
- 同一購読で in_progress の訪問は1件まで (UNIQUEスロット + 採番の衝突で担保)
- 書き込めるのは購読の active な割当を持つ技術者のみ
"""
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fleetcare.core.config import settings
from fleetcare.core.database import utcnow
from fleetcare.core.exceptions import (
    InvalidRejectionReason,
    InvalidTransition,
    MediaUploadFailed,
    NoActiveAssignment,
    NotFound,
    SubscriptionNotActive,
    ValidationFailed,
    VisitAlreadyInProgress,
)
from fleetcare.core.storage import BlobStore, get_blob_store
from fleetcare.models.assignment import Assignment
from fleetcare.models.visit import Visit, VisitInspection, VisitMedia
from fleetcare.services import assignment_service, event_service, subscription_service
from fleetcare.services.findings import (
    attention_summary,
    normalize_inspections,
    normalize_parts,
    normalize_system_findings,
    render_findings_text,
)
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MediaUpload:
    """提出時にアップロードする写真・動画"""
    filename: str
    content_type: str
    data: bytes

    @property
    def media_type(self) -> str:
        return "video" if self.content_type.startswith("video/") else "photo"

    @property
    def extension(self) -> str:
        if "." in self.filename:
            return self.filename.rsplit(".", 1)[-1].lower() or "bin"
        return "bin"


# =========================================================
# 参照
# =========================================================

def get_visit(db: Session, visit_id: int, for_update: bool = False) -> Visit:
    q = db.query(Visit).filter(Visit.id == visit_id)
    if for_update:
        q = q.with_for_update()
    visit = q.first()
    if not visit:
        raise NotFound("訪問が見つかりません", visit_id=visit_id)
    return visit


def get_in_progress_visit(db: Session, subscription_id: int) -> Optional[Visit]:
    return db.query(Visit).filter(
        Visit.subscription_id == subscription_id,
        Visit.status == "in_progress",
    ).first()


def list_subscription_visits(db: Session, subscription_id: int) -> list[Visit]:
    """購読の訪問一覧 (新しい番号順)"""
    return db.query(Visit).filter(
        Visit.subscription_id == subscription_id,
    ).order_by(Visit.visit_number.desc()).all()


def list_visits(db: Session, status: Optional[str] = None) -> list[Visit]:
    """管理画面: 訪問一覧 (確認待ちキュー等)"""
    q = db.query(Visit)
    if status:
        q = q.filter(Visit.status == status)
    return q.order_by(Visit.completed_at.desc(), Visit.id.desc()).all()


# =========================================================
# 技術者操作
# =========================================================

def _require_writer(db: Session, visit: Visit, technician_id: int) -> Assignment:
    """購読の現担当のみ書き込み可。旧担当が始めた訪問は現担当に引き継ぐ"""
    assignment = assignment_service.get_active_assignment(db, visit.subscription_id)
    if not assignment or assignment.technician_id != technician_id:
        raise NoActiveAssignment(subscription_id=visit.subscription_id, visit_id=visit.id)
    if visit.assignment_id != assignment.id:
        logger.info(
            f"訪問引き継ぎ: visit_id={visit.id}, technician {visit.technician_id} -> {technician_id}"
        )
        visit.assignment_id = assignment.id
        visit.technician_id = technician_id
    return assignment


def _require_in_progress(visit: Visit):
    if visit.status != "in_progress":
        raise InvalidTransition(
            f"{visit.status} の訪問は編集・提出できません",
            visit_id=visit.id,
            status=visit.status,
        )


def start_visit(
    db: Session,
    subscription_id: int,
    technician_id: int,
    now: Optional[datetime] = None,
) -> Visit:
    """訪問開始 (次の訪問番号を採番して in_progress で作成)"""
    now = now or utcnow()
    sub = subscription_service.get_subscription(db, subscription_id, for_update=True)
    if sub.status != "active" or not subscription_service.is_payment_confirmed(sub):
        raise SubscriptionNotActive(subscription_id=sub.id, status=sub.status)

    assignment = assignment_service.get_active_assignment(db, sub.id)
    if not assignment or assignment.technician_id != technician_id:
        raise NoActiveAssignment(subscription_id=sub.id)

    current = get_in_progress_visit(db, sub.id)
    if current:
        raise VisitAlreadyInProgress(subscription_id=sub.id, visit_id=current.id)

    last_number = db.query(func.max(Visit.visit_number)).filter(
        Visit.subscription_id == sub.id,
    ).scalar() or 0

    visit = Visit(
        subscription_id=sub.id,
        assignment_id=assignment.id,
        technician_id=technician_id,
        visit_number=last_number + 1,
        status="in_progress",
        in_progress_slot=1,
        started_at=now,
        system_findings=[],
        parts_used=[],
    )
    db.add(visit)
    try:
        db.flush()
    except IntegrityError:
        # 同時開始: 採番 or 進行中スロットが衝突した側が負け
        db.rollback()
        logger.warning(f"訪問開始競合: subscription_id={subscription_id}, technician_id={technician_id}")
        raise VisitAlreadyInProgress(subscription_id=subscription_id)

    event_service.record_transition(
        db, "visit", visit.id, "started", None, "in_progress",
        actor_id=technician_id, subscription_id=sub.id,
        details={"visit_number": visit.visit_number},
    )
    db.commit()
    db.refresh(visit)
    logger.info(f"訪問開始: visit_id={visit.id}, subscription_id={sub.id}, visit_number={visit.visit_number}")
    return visit


def record_findings(
    db: Session,
    visit_id: int,
    technician_id: int,
    system_findings: Optional[list[dict]] = None,
    notes: Optional[str] = None,
    work_performed: Optional[str] = None,
    recommendations: Optional[str] = None,
    duration: Optional[int] = None,
    location: Optional[str] = None,
    parts_used: Optional[list[dict]] = None,
) -> Visit:
    """点検内容の記録 (in_progress の間のみ。ステータスは変えない)

    None の項目は既存値を保持する。
    """
    visit = get_visit(db, visit_id, for_update=True)
    _require_in_progress(visit)
    _require_writer(db, visit, technician_id)

    if system_findings is not None:
        visit.system_findings = normalize_system_findings(system_findings)
    if parts_used is not None:
        visit.parts_used = normalize_parts(parts_used)
    if duration is not None:
        if duration < 0:
            raise ValidationFailed("作業時間が不正です", duration=duration)
        visit.duration_minutes = duration
    if notes is not None:
        visit.findings = notes
    if work_performed is not None:
        visit.work_performed = work_performed
    if recommendations is not None:
        visit.recommendations = recommendations
    if location is not None:
        visit.location = location

    db.commit()
    db.refresh(visit)
    return visit


def _validate_media(media: list[MediaUpload]):
    for m in media:
        if not (m.content_type.startswith("image/") or m.content_type.startswith("video/")):
            raise ValidationFailed(f"写真または動画のみアップロードできます: {m.filename}")
        if len(m.data) > settings.MAX_MEDIA_BYTES:
            raise ValidationFailed(f"ファイルサイズが上限を超えています: {m.filename}")


def _upload_media(blob_store: BlobStore, visit_id: int, media: list[MediaUpload]) -> list[dict]:
    """全件アップロード。途中で失敗したらアップロード済み分を削除して MediaUploadFailed"""
    uploaded = []
    for m in media:
        path = f"{visit_id}/{int(utcnow().timestamp() * 1000)}-{secrets.token_hex(3)}.{m.extension}"
        try:
            url = blob_store.put(path, m.data, m.content_type)
        except Exception as e:
            logger.error(f"訪問メディアアップロード失敗: visit_id={visit_id}, file={m.filename}, error={e}")
            _remove_uploaded(blob_store, uploaded)
            raise MediaUploadFailed(visit_id=visit_id, filename=m.filename) from e
        uploaded.append({
            "url": url,
            "storage_path": path,
            "caption": m.filename,
            "media_type": m.media_type,
        })
    return uploaded


def _remove_uploaded(blob_store: BlobStore, uploaded: list[dict]):
    for u in uploaded:
        try:
            blob_store.delete(u["storage_path"])
        except Exception as e:
            logger.warning(f"アップロード済みメディア削除失敗: {u['storage_path']} - {e}")


def submit_visit(
    db: Session,
    visit_id: int,
    technician_id: int,
    inspections: Optional[list[dict]] = None,
    media: Optional[list[MediaUpload]] = None,
    blob_store: Optional[BlobStore] = None,
    now: Optional[datetime] = None,
) -> Visit:
    """訪問レポート提出: in_progress → pending_confirmation

    メディアを先に全件アップロードし、成功した場合のみ明細・メディア・ステータスを
    1トランザクションで確定する。失敗時は in_progress のまま (再提出可)。
    """
    now = now or utcnow()
    media = media or []
    blob_store = blob_store or get_blob_store()

    visit = get_visit(db, visit_id)
    _require_in_progress(visit)
    _require_writer(db, visit, technician_id)
    # 記録済み所見も提出時に再検証 (要対応メモ必須)
    normalize_system_findings(visit.system_findings)
    inspection_rows = normalize_inspections(inspections)
    _validate_media(media)

    uploaded = _upload_media(blob_store, visit.id, media)

    try:
        count = db.query(Visit).filter(
            Visit.id == visit.id,
            Visit.status == "in_progress",
        ).update({
            "status": "pending_confirmation",
            "in_progress_slot": None,
            "completed_at": now,
        }, synchronize_session=False)
        if count == 0:
            db.rollback()
            _remove_uploaded(blob_store, uploaded)
            raise InvalidTransition("他の操作により訪問の状態が変更されました", visit_id=visit_id)

        for row in inspection_rows:
            db.add(VisitInspection(visit_id=visit.id, **row))
        for u in uploaded:
            db.add(VisitMedia(visit_id=visit.id, category="issue", uploaded_at=now, **u))

        event_service.record_transition(
            db, "visit", visit.id, "submitted", "in_progress", "pending_confirmation",
            actor_id=technician_id, subscription_id=visit.subscription_id,
            details={"inspections": len(inspection_rows), "media": len(uploaded)},
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        _remove_uploaded(blob_store, uploaded)
        raise

    db.refresh(visit)
    logger.info(
        f"訪問レポート提出: visit_id={visit.id}, visit_number={visit.visit_number}, "
        f"inspections={len(inspection_rows)}, media={len(uploaded)}, "
        f"findings={attention_summary(visit.system_findings)}"
    )
    return visit


# =========================================================
# 管理者操作
# =========================================================

def _review(
    db: Session,
    visit_id: int,
    admin_id: int,
    to_status: str,
    values: dict,
    action: str,
    details: Optional[dict] = None,
) -> Visit:
    count = db.query(Visit).filter(
        Visit.id == visit_id,
        Visit.status == "pending_confirmation",
    ).update({"status": to_status, **values}, synchronize_session=False)

    visit = get_visit(db, visit_id)
    db.refresh(visit)
    if count == 0:
        raise InvalidTransition(
            f"{visit.status} の訪問は確認できません",
            visit_id=visit_id,
            status=visit.status,
        )

    event_service.record_transition(
        db, "visit", visit.id, action, "pending_confirmation", to_status,
        actor_id=admin_id, subscription_id=visit.subscription_id, details=details,
    )
    db.commit()
    db.refresh(visit)
    logger.info(f"訪問{action}: visit_id={visit.id}, admin_id={admin_id}")
    return visit


def confirm_visit(db: Session, visit_id: int, admin_id: int, now: Optional[datetime] = None) -> Visit:
    """pending_confirmation → confirmed (請求は購読単位のため請求記録は作らない)"""
    now = now or utcnow()
    return _review(
        db, visit_id, admin_id, "confirmed",
        {"confirmed_at": now, "confirmed_by": admin_id},
        "confirmed",
    )


def reject_visit(
    db: Session,
    visit_id: int,
    admin_id: int,
    reason: str,
    now: Optional[datetime] = None,
) -> Visit:
    """pending_confirmation → rejected (終端。やり直しは新しい訪問で)"""
    reason = (reason or "").strip()
    if not reason:
        raise InvalidRejectionReason(visit_id=visit_id)
    now = now or utcnow()
    return _review(
        db, visit_id, admin_id, "rejected",
        {"rejected_at": now, "rejected_by": admin_id, "rejection_reason": reason},
        "rejected",
        details={"reason": reason},
    )


# =========================================================
# レポート
# =========================================================

def _fmt(dt: Optional[datetime]) -> Optional[str]:
    return dt.strftime("%Y-%m-%d %H:%M") if dt else None


def render_visit_report(visit: Visit) -> str:
    """訪問レポート (プレーンテキスト)"""
    parts = visit.parts_used or []
    parts_text = "\n".join(
        f"  {i}. {p['name']} - Qty: {p.get('quantity') or 1}"
        + (f" - Cost: ${p['cost']}" if p.get("cost") else "")
        for i, p in enumerate(parts, 1)
    ) or "No parts used"

    inspections_text = "\n".join(
        f"  {i}. {ins.component}: {ins.status.upper()}"
        + (f"\n     Notes: {ins.notes}" if ins.notes else "")
        for i, ins in enumerate(visit.inspections, 1)
    ) or "No inspection data available"

    media_text = "\n".join(
        f"  {i}. {m.caption or 'Photo'} - {m.url}\n     Category: {m.category or 'general'}"
        for i, m in enumerate(visit.media, 1)
    ) or "No photos uploaded"

    header = [
        "SUBSCRIPTION VISIT REPORT",
        "========================",
        "",
        f"Visit #{visit.visit_number}",
        f"Status: {visit.status.upper()}",
    ]
    for label, value in (
        ("Started", _fmt(visit.started_at)),
        ("Completed", _fmt(visit.completed_at)),
        ("Confirmed", _fmt(visit.confirmed_at)),
        ("Duration", f"{visit.duration_minutes} minutes" if visit.duration_minutes else None),
        ("Location", visit.location),
        ("Rejection reason", visit.rejection_reason),
    ):
        if value:
            header.append(f"{label}: {value}")

    sections = [
        ("FINDINGS", render_findings_text(visit.system_findings, visit.findings) or "No findings recorded"),
        ("WORK PERFORMED", visit.work_performed or "No work details provided"),
        ("PARTS USED", parts_text),
        ("RECOMMENDATIONS", visit.recommendations or "No recommendations provided"),
        ("INSPECTION RESULTS", inspections_text),
        ("EVIDENCE PHOTOS & VIDEOS", media_text),
    ]
    body = []
    for title, text in sections:
        body.extend(["", f"--- {title} ---", "", text])

    return "\n".join(header + body + ["", "========================"])
