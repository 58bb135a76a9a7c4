from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WATCHSYNC_", env_file=".env", extra="ignore")

    # Server
    allowed_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 3642
    log_level: str = "INFO"

    # Room store. None keeps rooms for the process lifetime.
    room_idle_timeout: Optional[float] = None
    reap_interval: float = 60.0

    # Client
    server_url: str = "http://localhost:3642"
    seek_tolerance: float = 0.5
    skip_step: float = 5.0
    reconnection_attempts: int = 5
    reconnection_delay: float = 1.0
    ping_interval: float = 2.0
    ping_timeout: float = 5.0
    apply_paused_sync: bool = False
    echo_suppression: str = "origin"  # origin | single_shot
    sync_on_connect: bool = False

    @property
    def origins(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings():
    return Settings()
