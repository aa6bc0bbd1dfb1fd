"""15分ごと: 支払い確認済みで入金記録・請求書が欠けている購読を補完"""
from sqlalchemy.exc import SQLAlchemyError

from fleetcare.core.database import session_scope
from fleetcare.services import payment_service
from fleetcare.core.logging import get_logger

logger = get_logger(__name__)


def retry_financial_records():
    try:
        with session_scope() as db:
            result = payment_service.retry_missing_financial_records(db)
    except SQLAlchemyError as e:
        logger.error(f"請求記録補完エラー: {e}")
        return
    if any(result.values()):
        logger.info("請求記録補完", extra={"extra_data": result})
