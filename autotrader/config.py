"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'autotrader.db'}"
    encryption_key: str = ""  # Fernet key; generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8081"]

    # Auth (tokens are issued elsewhere; we only verify them)
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 10080  # 7 days

    # Indodax
    indodax_public_url: str = "https://indodax.com/api"
    indodax_private_url: str = "https://indodax.com/tapi"
    indodax_timeout_seconds: float = 15.0

    # Signal generation
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0

    # Scheduling
    scheduler_autostart: bool = True
    monitor_interval_seconds: int = 60
    order_sync_interval_seconds: int = 60
    analysis_interval_seconds: int = 300
    shutdown_timeout_seconds: float = 30.0

    # Trading rules
    signal_validity_minutes: int = 60
    min_order_idr: float = 50_000.0
    default_pairs: list[str] = ["btc_idr", "eth_idr"]

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "AT_", "env_file": ".env"}


settings = Settings()
