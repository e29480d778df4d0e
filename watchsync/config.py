from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Relay server
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    WS_PATH: str = "/ws"
    CORS_ORIGINS: List[str] = ["*"]

    # Viewer
    RELAY_URL: str = "ws://localhost:5000/ws"
    RECONNECT_DELAY_SECONDS: float = 2.0
    VIEWER_STATUS_INTERVAL_SECONDS: int = 30

    # Sync Logic
    SYNC_TOLERANCE_SECONDS: float = 0.5
    APPLY_SUPPRESS_SECONDS: float = 1.5
    MANUAL_SUPPRESS_SECONDS: float = 0.7
    STATE_CHANGE_DEBOUNCE_SECONDS: float = 0.1
    ECHO_GUARD: str = "timer"  # timer, sequence

    # System
    MODE: str = "server"  # server, viewer
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
