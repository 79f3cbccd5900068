import os
from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/artiste"

    # comfyui | chutes
    IMAGE_GENERATION_BACKEND: str = "comfyui"

    COMFYUI_URL: str = "http://127.0.0.1:8188"
    COMFYUI_TOKEN: Optional[str] = None
    WORKFLOW_PATH: str = os.path.join(os.path.dirname(__file__), "inference", "workflows")

    CHUTES_URL: str = "https://image.chutes.ai"
    CHUTES_TOKEN: Optional[str] = None

    DEFAULT_MODEL: str = "flux"
    GENERATION_TIMEOUT_SECONDS: float = 60 * 60
    POLL_INTERVAL_SECONDS: float = 1.0
    HTTP_TIMEOUT_SECONDS: float = 30.0

    PHOTOS_ROOT: str = "db/photos"
    WORKER_POOL_SIZE: int = 4

    # Single-hop relay: when set, events go to the peer instead of local subscribers.
    PEER_URL: Optional[str] = None
    PEER_TOKEN: Optional[str] = None
    BROADCAST_TOKEN: Optional[str] = None
    BROADCAST_ALLOWED_NETWORKS: List[str] = ["127.0.0.0/8", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "::1/128"]

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
