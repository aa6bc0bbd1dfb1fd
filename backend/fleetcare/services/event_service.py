"""状態遷移イベントの記録と配信

遷移と同じトランザクションで status_events に追記し、コミット後にRedisへ配信する。
配信はベストエフォート (取りこぼしはポーリングAPIで補完される)。
"""
import json
from typing import Optional

import redis
from sqlalchemy import event, func
from sqlalchemy.orm import Session

from fleetcare.core.config import settings
from fleetcare.core.database import utcnow
from fleetcare.core.redis import get_sync_redis
from fleetcare.models.status_event import StatusEvent
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)

PENDING_KEY = "fleetcare_pending_events"


def record_transition(
    db: Session,
    entity_type: str,
    entity_id: int,
    action: str,
    from_status: Optional[str],
    to_status: Optional[str],
    actor_id: Optional[int],
    subscription_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> StatusEvent:
    """遷移イベントを追記 (コミットは呼び出し側)"""
    last_seq = db.query(func.max(StatusEvent.seq)).filter(
        StatusEvent.entity_type == entity_type,
        StatusEvent.entity_id == entity_id,
    ).scalar() or 0

    ev = StatusEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        seq=last_seq + 1,
        subscription_id=subscription_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        details=details,
        created_at=utcnow(),
    )
    db.add(ev)
    db.flush()

    # after_commit ではSQLを発行できないため、配信内容はここで確定させておく
    db.info.setdefault(PENDING_KEY, []).append(event_to_dict(ev))
    return ev


def event_to_dict(ev: StatusEvent) -> dict:
    return {
        "id": ev.id,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "seq": ev.seq,
        "subscription_id": ev.subscription_id,
        "action": ev.action,
        "from_status": ev.from_status,
        "to_status": ev.to_status,
        "actor_id": ev.actor_id,
        "details": ev.details,
        "created_at": ev.created_at.isoformat() if ev.created_at else None,
    }


def channels_for(payload: dict) -> list[str]:
    """配信チャネル: エンティティ単位・購読単位・操作者単位"""
    prefix = settings.EVENT_CHANNEL_PREFIX
    channels = [f"{prefix}:{payload['entity_type']}:{payload['entity_id']}"]
    if payload.get("subscription_id") and payload["entity_type"] != "subscription":
        channels.append(f"{prefix}:subscription:{payload['subscription_id']}")
    if payload.get("actor_id"):
        channels.append(f"{prefix}:actor:{payload['actor_id']}")
    return channels


def publish(payloads: list[dict]) -> int:
    """Redis Pub/Subへ配信。失敗してもトランザクションには影響させない"""
    if not payloads:
        return 0
    sent = 0
    try:
        r = get_sync_redis()
        for payload in payloads:
            message = json.dumps(payload, ensure_ascii=False, default=str)
            for channel in channels_for(payload):
                r.publish(channel, message)
            sent += 1
    except redis.RedisError as e:
        logger.warning(f"イベント配信失敗 (ポーリングで補完): sent={sent}/{len(payloads)}, error={e}")
    return sent


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session: Session):
    payloads = session.info.pop(PENDING_KEY, None)
    if payloads:
        publish(payloads)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session):
    session.info.pop(PENDING_KEY, None)


def list_events(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    after_id: int = 0,
    limit: int = 100,
) -> list[StatusEvent]:
    """ポーリング取得 (after_id より新しいものを古い順に)"""
    q = db.query(StatusEvent).filter(StatusEvent.id > after_id)
    if entity_type:
        q = q.filter(StatusEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(StatusEvent.entity_id == entity_id)
    if subscription_id is not None:
        q = q.filter(StatusEvent.subscription_id == subscription_id)
    if actor_id is not None:
        q = q.filter(StatusEvent.actor_id == actor_id)
    return q.order_by(StatusEvent.id.asc()).limit(limit).all()
