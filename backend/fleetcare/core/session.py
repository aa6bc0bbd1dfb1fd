"""セッション参照 (ログイン処理は外部の認証基盤が担当し、Redisにセッションを書き込む)

期待するハッシュ: session:<id> → {"user_id": "...", "role": "customer|technician|admin"}
"""
from typing import Optional
import redis.asyncio as aioredis
from fleetcare.core.config import settings

SESSION_PREFIX = "session:"
SESSION_TTL = settings.SESSION_TIMEOUT_MINUTES * 60  # 秒


def _session_user_id(data: dict) -> Optional[int]:
    raw = data.get("user_id")
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        return None
    return user_id if user_id > 0 else None


async def get_session_user_id(r: aioredis.Redis, session_id: Optional[str]) -> Optional[int]:
    """セッションからユーザーIDを取得。アクセスごとにアイドルタイムアウトをリセット

    壊れたセッション (user_id欠落・非数値) は未ログイン扱い。
    """
    if not session_id:
        return None
    key = f"{SESSION_PREFIX}{session_id}"
    data = await r.hgetall(key)
    if not data:
        return None
    user_id = _session_user_id(data)
    if user_id is None:
        return None
    await r.expire(key, SESSION_TTL)
    return user_id
