"""Configuration management for s3find."""

from pydantic import Field
from pydantic_settings import BaseSettings

# DeleteObjects accepts at most this many keys per request.
MAX_DELETE_BATCH = 1000


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    log_level: str = "WARNING"
    otel_enabled: bool = False
    otel_service_name: str = "s3find"

    concurrency: int = Field(default=32, ge=1)
    delete_batch_size: int = Field(default=MAX_DELETE_BATCH, ge=1, le=MAX_DELETE_BATCH)
    exec_timeout: int = Field(default=300, ge=1)
    tag_concurrency: int = Field(default=50, ge=1)
    fail_on_key_errors: bool = False

    model_config = {
        "env_prefix": "S3FIND_",
        "case_sensitive": False,
    }


settings = Settings()
