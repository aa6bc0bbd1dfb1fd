import logging
import sys
import json
from datetime import datetime, timezone

from fleetcare.core.config import settings


class JSONFormatter(logging.Formatter):
    """構造化JSONログフォーマッター

    logger.info(msg, extra={"extra_data": {...}}) の extra_data は "data" に出力する。
    """

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "env": settings.ENV,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            log_entry["data"] = record.extra_data
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(debug: bool = False, json_output: bool = None):
    """ロギング設定を初期化 (LOG_JSON=false で人間向けの1行形式)"""
    level = logging.DEBUG if debug else logging.INFO
    if json_output is None:
        json_output = settings.LOG_JSON

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in ("sqlalchemy.engine", "apscheduler", "multipart"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
