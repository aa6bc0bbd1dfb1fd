"""Redis接続

- 非同期: FastAPIからのセッション参照・ヘルスチェック
- 同期: 状態遷移イベントの配信・スケジューラのハートビート
"""
from typing import Optional

import redis.asyncio as aioredis
import redis as sync_redis
from fleetcare.core.config import settings

redis_pool = aioredis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=20,
    decode_responses=True,
)

# 配信はリクエスト処理中に走るため、Redis障害時に長く待たない
sync_redis_pool = sync_redis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=10,
    decode_responses=True,
    socket_connect_timeout=2,
    socket_timeout=2,
)


async def get_redis() -> aioredis.Redis:
    """FastAPI依存関数"""
    return aioredis.Redis(connection_pool=redis_pool)


def get_sync_redis() -> sync_redis.Redis:
    return sync_redis.Redis(connection_pool=sync_redis_pool)


async def check_redis_connection() -> bool:
    try:
        r = await get_redis()
        await r.ping()
        return True
    except sync_redis.RedisError:
        return False


async def read_heartbeat(r: aioredis.Redis, key: str) -> Optional[str]:
    """ハートビートの最終時刻 (ISO形式)。未記録・期限切れなら None"""
    try:
        return await r.get(key)
    except sync_redis.RedisError:
        return None
