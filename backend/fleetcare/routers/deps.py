"""共通依存関数: 認証・ロール制御・閲覧権限"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Request, HTTPException, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.core.exceptions import NotFound
from fleetcare.core.redis import get_redis
from fleetcare.core.session import get_session_user_id
from fleetcare.models.subscription import Subscription
from fleetcare.models.user import User
from fleetcare.services import assignment_service, subscription_service


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_identity(
    request: Request,
    db: Session = Depends(get_db),
    r=Depends(get_redis),
) -> Optional[Identity]:
    """Cookie → Redis → DB で利用者を特定。未ログインならNone"""
    user_id = await get_session_user_id(r, request.cookies.get("session_id"))
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
    if not user:
        return None
    # ロールはDBを正とする (セッション作成後の権限変更を反映)
    return Identity(user_id=user.id, role=user.role)


async def require_login(
    identity: Optional[Identity] = Depends(get_current_identity),
) -> Identity:
    """ログイン必須。未ログインなら401"""
    if identity is None:
        raise HTTPException(status_code=401, detail="ログインが必要です")
    return identity


def _require_role(identity: Identity, role: str, label: str) -> Identity:
    if identity.role != role:
        raise HTTPException(status_code=403, detail=f"{label}権限が必要です")
    return identity


async def require_customer(identity: Identity = Depends(require_login)) -> Identity:
    return _require_role(identity, "customer", "顧客")


async def require_technician(identity: Identity = Depends(require_login)) -> Identity:
    return _require_role(identity, "technician", "技術者")


async def require_admin(identity: Identity = Depends(require_login)) -> Identity:
    """管理者権限必須。adminでなければ403"""
    return _require_role(identity, "admin", "管理者")


def can_view_subscription(db: Session, identity: Identity, sub: Subscription) -> bool:
    """購読の閲覧権限

    - 管理者: すべて
    - 顧客: 自分の購読
    - 技術者: 現在担当している支払い確認済みの購読のみ
    """
    if identity.is_admin:
        return True
    if identity.role == "customer":
        return sub.customer_id == identity.user_id
    if identity.role == "technician":
        if not subscription_service.is_payment_confirmed(sub):
            return False
        assignment = assignment_service.get_active_assignment(db, sub.id)
        return assignment is not None and assignment.technician_id == identity.user_id
    return False


def get_visible_subscription(db: Session, identity: Identity, subscription_id: int) -> Subscription:
    """閲覧できない購読は存在しないものとして扱う"""
    sub = subscription_service.get_subscription(db, subscription_id)
    if not can_view_subscription(db, identity, sub):
        raise NotFound("購読が見つかりません", subscription_id=subscription_id)
    return sub
