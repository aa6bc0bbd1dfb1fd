"""訪問エビデンス配信 (LocalBlobStore が返すURLの実体)"""
import mimetypes
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import NotFound
from fleetcare.core.storage import BlobStore, get_blob_store
from fleetcare.models.visit import Visit, VisitMedia
from fleetcare.routers.deps import Identity, can_view_subscription, require_login
from fleetcare.services import subscription_service

router = APIRouter(prefix="/media", tags=["media"])


@router.get("/{storage_path:path}")
async def get_media(
    storage_path: str,
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """提出済みメディアのみ配信。購読を閲覧できない利用者には存在しないものとして扱う"""
    media = db.query(VisitMedia).filter(VisitMedia.storage_path == storage_path).first()
    visit = db.query(Visit).filter(Visit.id == media.visit_id).first() if media else None
    if not visit:
        raise NotFound("メディアが見つかりません")

    sub = subscription_service.get_subscription(db, visit.subscription_id)
    if not can_view_subscription(db, identity, sub):
        raise NotFound("メディアが見つかりません")

    try:
        full_path = blob_store.resolve(storage_path)
    except FileNotFoundError:
        raise NotFound("メディアが見つかりません")

    media_type, _ = mimetypes.guess_type(str(full_path))
    return FileResponse(path=full_path, media_type=media_type or "application/octet-stream")
