"""毎時: 終了日を過ぎた購読を expired にする"""
from sqlalchemy.exc import SQLAlchemyError

from fleetcare.core.database import session_scope
from fleetcare.services import subscription_service
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)


def expire_subscriptions():
    try:
        with session_scope() as db:
            count = subscription_service.expire_due_subscriptions(db)
    except SQLAlchemyError as e:
        logger.error(f"期限切れ処理エラー: {e}")
        return
    if count:
        logger.info(f"期限切れ処理完了: {count}件")
