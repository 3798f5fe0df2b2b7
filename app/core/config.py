from typing import ClassVar, Optional
from pydantic_settings import BaseSettings
from fastapi.security import OAuth2PasswordBearer


class Settings(BaseSettings):
    # Local dev: SQLite file. Render / Prod: set DATABASE_URL to the Postgres URL
    database_url: str = "sqlite+aiosqlite:///./medminder.db"
    sql_echo: bool = False

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    oauth2_scheme: ClassVar[OAuth2PasswordBearer] = OAuth2PasswordBearer(tokenUrl="/auth/login")

    # Wall clock used by the alarm engine (None = host local time)
    timezone: Optional[str] = None

    # Dose ledger store (the server-side stand-in for browser local storage)
    ledger_path: str = "./medminder-ledger.json"

    poll_interval_seconds: float = 5.0
    firing_window_seconds: int = 30
    snooze_minutes: int = 5
    tone_interval_seconds: float = 1.5
    reward_points: int = 10

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

settings = Settings()
