"""Scheduler エントリポイント: python -m fleetcare.scheduler で起動"""
import signal
import sys
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

import redis

from fleetcare.core.config import settings
from fleetcare.core.database import utcnow
from fleetcare.core.logging import setup_logging, get_logger
from fleetcare.core.redis import get_sync_redis
from fleetcare.scheduler import HEARTBEAT_KEY, HEARTBEAT_TTL
from fleetcare.scheduler.financial_retry import retry_financial_records
from fleetcare.scheduler.subscription_expiry import expire_subscriptions

setup_logging(debug=settings.DEBUG)
logger = get_logger("scheduler")

scheduler = BlockingScheduler(timezone=settings.SCHEDULER_TIMEZONE)


def signal_handler(sig, frame):
    logger.info("Scheduler停止シグナル受信")
    scheduler.shutdown(wait=False)
    sys.exit(0)


def heartbeat():
    """ハートビート書き込み (/health で参照)"""
    try:
        get_sync_redis().set(HEARTBEAT_KEY, utcnow().isoformat(), ex=HEARTBEAT_TTL)
    except redis.RedisError as e:
        logger.warning(f"ハートビート書き込み失敗: {e}")


def main():
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
    logger.info("Scheduler起動")

    # 毎分: ハートビート
    scheduler.add_job(
        heartbeat,
        CronTrigger(minute="*", timezone=settings.SCHEDULER_TIMEZONE),
        id="heartbeat",
        max_instances=1,
    )

    # 毎時05分: 購読の期限切れ
    scheduler.add_job(
        expire_subscriptions,
        CronTrigger(minute=5, timezone=settings.SCHEDULER_TIMEZONE),
        id="subscription_expiry",
        max_instances=1,
    )

    # 15分ごと: 入金記録・請求書の補完
    scheduler.add_job(
        retry_financial_records,
        CronTrigger(minute="*/15", timezone=settings.SCHEDULER_TIMEZONE),
        id="financial_retry",
        max_instances=1,
    )

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler終了")


if __name__ == "__main__":
    main()
