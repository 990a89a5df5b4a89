from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # データベース
    DATABASE_URL: str = "mysql+pymysql://crm:crmpassword@db:3306/realty_crm?charset=utf8mb4"

    # Redis (セッション・スケジューラのハートビート)
    REDIS_URL: str = "redis://redis:6379/0"

    # セッション (認証サービスが発行したものを参照のみ)
    SESSION_TIMEOUT_MINUTES: int = 60

    # スケジューラ
    SWEEP_INTERVAL_MINUTES: int = 5
    SCHEDULER_TIMEZONE: str = "Europe/Moscow"

    # 料金・デモ
    DEMO_TARIFF_CODE: str = "demo"
    DEMO_PAYMENT_METHOD: str = "demo"

    # サービス設定
    SITE_NAME: str = "Realty CRM Billing"
    ALLOWED_ORIGINS: str = "http://localhost:8000,http://localhost:3000"

    # 環境
    ENV: str = "development"
    DEBUG: bool = True

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
