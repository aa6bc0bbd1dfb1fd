from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from fleetcare.core.config import settings
from fleetcare.core.exceptions import FleetcareError
from fleetcare.core.logging import setup_logging, get_logger
from fleetcare.core.rate_limit import limiter, rate_limit_exceeded_handler
from fleetcare.routers import health, plans, subscriptions, technician, visits, invoices, events, media
from fleetcare.routers import admin_plans, admin_subscriptions, admin_visits

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションライフサイクル管理"""
    setup_logging(debug=settings.DEBUG)
    logger.info("アプリケーション起動")
    yield
    logger.info("アプリケーション終了")


app = FastAPI(
    title=settings.SITE_NAME,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# レート制限設定
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(FleetcareError)
async def domain_error_handler(request: Request, exc: FleetcareError):
    """ドメイン例外 → {"detail", "code"}"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# --- バリデーションエラー日本語化 ---
_FIELD_JA = {
    "plan_id": "プランID",
    "vehicle_count": "車両台数",
    "vehicles": "車両",
    "make": "メーカー",
    "model": "車種",
    "year": "年式",
    "vin": "VIN",
    "payment_method": "支払い方法",
    "payment_reference": "参照番号",
    "reason": "理由",
    "months": "延長月数",
    "technician_id": "技術者ID",
    "subscription_id": "購読ID",
    "system": "点検系統",
    "status": "ステータス",
    "duration": "作業時間",
    "quantity": "数量",
    "cost": "費用",
    "component": "部位",
    "plan_name": "プラン名",
    "price": "価格",
    "billing_cycle": "請求サイクル",
    "max_vehicles": "最大車両台数",
    "visits_per_month": "月間訪問回数",
    "after_id": "取得開始ID",
    "limit": "取得件数",
}


def _translate_error(err: dict) -> str:
    t = err.get("type", "")
    ctx = err.get("ctx", {})
    loc = err.get("loc", [])
    field = str(loc[-1]) if loc else ""
    fj = _FIELD_JA.get(field, field)

    if t == "string_too_short":
        return f"{fj}は{ctx.get('min_length', '')}文字以上で入力してください"
    if t == "string_too_long":
        return f"{fj}は{ctx.get('max_length', '')}文字以下で入力してください"
    if t == "missing":
        return f"{fj}は必須です"
    if t in ("int_parsing", "int_type"):
        return f"{fj}は数値で入力してください"
    if t == "greater_than_equal":
        return f"{fj}は{ctx.get('ge', '')}以上の値を入力してください"
    if t == "less_than_equal":
        return f"{fj}は{ctx.get('le', '')}以下の値を入力してください"
    if t == "literal_error":
        return f"{fj}は{ctx.get('expected', '')}のいずれかを指定してください"
    if t == "string_type":
        return f"{fj}は文字列で入力してください"
    if t == "bool_parsing":
        return f"{fj}は真偽値で入力してください"
    return f"{fj}: 入力値が不正です"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [_translate_error(e) for e in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": "、".join(messages), "code": "validation_failed"})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録
app.include_router(health.router)
app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(technician.router)
app.include_router(visits.router)
app.include_router(invoices.router)
app.include_router(events.router)
app.include_router(media.router)
app.include_router(admin_plans.router)
app.include_router(admin_subscriptions.router)
app.include_router(admin_visits.router)
