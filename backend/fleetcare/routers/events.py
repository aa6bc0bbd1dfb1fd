"""状態遷移イベントのポーリングAPI (Redis配信の取りこぼし補完用)"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import PermissionDenied, ValidationFailed
from fleetcare.models.assignment import Assignment
from fleetcare.models.visit import Visit
from fleetcare.schemas.event import StatusEventInfo
from fleetcare.services import event_service, subscription_service
from fleetcare.routers.deps import Identity, get_visible_subscription, require_login

router = APIRouter(prefix="/api/events", tags=["events"])

ENTITY_TYPES = ("subscription", "assignment", "visit")


def _subscription_of(db: Session, entity_type: str, entity_id: int) -> int:
    if entity_type == "subscription":
        return subscription_service.get_subscription(db, entity_id).id
    model = Assignment if entity_type == "assignment" else Visit
    row = db.query(model).filter(model.id == entity_id).first()
    if not row:
        raise PermissionDenied()
    return row.subscription_id


@router.get("", response_model=list[StatusEventInfo])
async def poll_events(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    after_id: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    identity: Identity = Depends(require_login),
    db: Session = Depends(get_db),
):
    """after_id より新しいイベントを古い順に返す

    管理者以外は、閲覧できる購読のイベントか自分が操作したイベントに限る。
    """
    if entity_type is not None and entity_type not in ENTITY_TYPES:
        raise ValidationFailed(f"entity_type が不正です: {entity_type}")
    if entity_id is not None and entity_type is None:
        raise ValidationFailed("entity_id には entity_type の指定が必要です")

    if not identity.is_admin:
        if entity_type and entity_id is not None:
            scope = _subscription_of(db, entity_type, entity_id)
            if subscription_id is not None and subscription_id != scope:
                raise PermissionDenied()
            subscription_id = scope
        if subscription_id is not None:
            get_visible_subscription(db, identity, subscription_id)
        elif actor_id is None or actor_id != identity.user_id:
            raise PermissionDenied("購読または自分の操作を指定してください")

    return event_service.list_events(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        subscription_id=subscription_id,
        actor_id=actor_id,
        after_id=after_id,
        limit=limit,
    )
