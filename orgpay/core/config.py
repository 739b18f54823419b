from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Database configuration (async SQLAlchemy URL, e.g. postgresql+asyncpg://...)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    # Public base URL of this API, used to build PayPal return/cancel URLs
    app_url: str = os.getenv("APP_URL", "http://localhost:8000")

    # JWT configuration (tokens issued by the identity provider)
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-this")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    # PayPal configuration
    paypal_client_id: str = os.getenv("PAYPAL_CLIENT_ID", "")
    paypal_client_secret: str = os.getenv("PAYPAL_CLIENT_SECRET", "")
    paypal_api_url: str = os.getenv("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com")
    paypal_webhook_id: str = os.getenv("PAYPAL_WEBHOOK_ID", "")
    paypal_bn_code: str = os.getenv("PAYPAL_BN_CODE", "")
    paypal_timeout: float = float(os.getenv("PAYPAL_TIMEOUT", "10"))

    # Ledger behaviour
    webhook_max_attempts: int = int(os.getenv("WEBHOOK_MAX_ATTEMPTS", "5"))
    subscription_replay_limit: int = int(os.getenv("SUBSCRIPTION_REPLAY_LIMIT", "10"))
    transaction_history_limit: int = int(os.getenv("TRANSACTION_HISTORY_LIMIT", "50"))

    class Config:
        env_file = ".env"


settings = Settings()
