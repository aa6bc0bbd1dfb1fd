from fastapi import APIRouter, Depends

from fleetcare.core.database import check_db_connection
from fleetcare.core.redis import check_redis_connection, get_redis, read_heartbeat
from fleetcare.scheduler import HEARTBEAT_KEY

router = APIRouter()


@router.get("/health")
@router.get("/api/health")
async def health_check(r=Depends(get_redis)):
    """ヘルスチェック (DB・Redis・スケジューラ)"""
    db_ok = check_db_connection()
    redis_ok = await check_redis_connection()
    heartbeat = await read_heartbeat(r, HEARTBEAT_KEY) if redis_ok else None

    return {
        "status": "ok" if (db_ok and redis_ok) else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "redis": "connected" if redis_ok else "disconnected",
        "scheduler_heartbeat": heartbeat,
    }
