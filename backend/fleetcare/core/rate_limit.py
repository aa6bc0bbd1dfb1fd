"""レート制限設定（slowapi使用）"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse


def rate_limit_key(request: Request) -> str:
    """ログイン中はセッション単位、未ログインはクライアントIP単位で数える

    同一拠点から複数の技術者がアップロードしても互いに枠を食い合わない。
    """
    session_id = request.cookies.get("session_id")
    if session_id:
        return f"session:{session_id}"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=["100/minute"],
    storage_uri="memory://",
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "detail": "リクエスト回数が上限を超えました。しばらく待ってから再度お試しください。",
            "code": "rate_limited",
            "retry_after": exc.detail,
        },
    )


PAYMENT_EVIDENCE_RATE_LIMIT = "5/minute"
SUBSCRIBE_RATE_LIMIT = "5/minute"
MEDIA_SUBMIT_RATE_LIMIT = "10/minute"      # 訪問レポート提出 (アップロード含む)
