"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    DEBUG: bool = False
    LOG_LEVEL: str = "info"

    # Metrics
    ENABLE_METRICS: bool = False

    # Validation
    MAX_CONCURRENT_VALIDATIONS: int = 110
    MAX_NESTING_DEPTH: int = 64
    MAX_DESCRIPTOR_BYTES: int = 16 * 1024 * 1024

    # Distribution client
    PROTO_SCHEMA_INPUT_DIR: str = "./data/proto"
    PROTOC_PATH: str = "protoc"
    DESCRIPTOR_SERVER_URL: str = "http://localhost:8080"
    UPLOAD_LOOP_ENABLED: bool = False
    UPLOAD_INTERVAL_SECONDS: float = 10.0
    UPLOAD_ONLY_ON_CHANGE: bool = False
    UPLOAD_TIMEOUT_SECONDS: float = 10.0
    UPLOAD_MAX_ATTEMPTS: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
