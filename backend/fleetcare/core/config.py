from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # データベース
    DATABASE_URL: str = "mysql+pymysql://fleetcare:fleetcare@db:3306/fleetcare?charset=utf8mb4"

    # Redis (セッション参照・イベント配信)
    REDIS_URL: str = "redis://redis:6379/0"

    # サービス設定
    SITE_NAME: str = "Fleetcare"
    ALLOWED_ORIGINS: str = "http://localhost:8000,http://localhost:3000"

    # セッション (認証自体は外部。ここではsession_idからIDを引くだけ)
    SESSION_TIMEOUT_MINUTES: int = 60

    # 訪問エビデンス (写真・動画) 保存先
    MEDIA_ROOT: str = "/data/visit-media"
    MEDIA_BASE_URL: str = "http://localhost:8000/media"
    MAX_MEDIA_BYTES: int = 50 * 1024 * 1024

    # 請求
    INVOICE_CURRENCY: str = "USD"

    # イベント配信
    EVENT_CHANNEL_PREFIX: str = "fleetcare:events"

    # スケジューラ
    SCHEDULER_TIMEZONE: str = "UTC"

    # 環境
    ENV: str = "development"
    DEBUG: bool = True
    SQL_ECHO: bool = False
    LOG_JSON: bool = True

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
