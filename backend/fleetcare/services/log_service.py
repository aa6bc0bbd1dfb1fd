"""system_logs への記録 (管理者が後追いで対応すべき事象)"""
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetcare.models.system_log import SystemLog
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)


def write_system_log(
    db: Session,
    level: str,
    event_type: str,
    message: str,
    subscription_id: Optional[int] = None,
    user_id: Optional[int] = None,
    details: Optional[dict] = None,
):
    """システムログ記録 (記録失敗は本処理に影響させない)"""
    try:
        db.add(SystemLog(
            level=level,
            event_type=event_type,
            subscription_id=subscription_id,
            user_id=user_id,
            message=message,
            details=details,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"システムログ記録失敗: {event_type} - {e}")
