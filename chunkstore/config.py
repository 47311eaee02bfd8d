"""
Server configuration

Values come from environment variables prefixed with CHUNKSTORE_ (e.g.
CHUNKSTORE_STORAGE=s3), or from a .env file in the working directory.
Environment variables take precedence.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "chunkstore_"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_file=".env", extra="ignore")

    host: str = Field("127.0.0.1", description="Interface the HTTP server binds to")
    port: int = Field(8000, description="Port the HTTP server listens on")
    log_level: str = Field("INFO", description="Root log level")

    storage: Literal["memory", "s3"] = Field("memory", description="Object storage backend to wrap")
    s3_bucket: str | None = None
    s3_access_key_id: str | None = None
    s3_access_key_secret: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint: str | None = None

    redis_dsn: str | None = Field(
        None, description="Redis holding the chunk owners; an in-memory map is used when unset"
    )
    default_owner: str = Field("", description="Owner of chunks the metadata service does not know")

    @model_validator(mode="after")
    def check_s3(self) -> "Settings":
        if self.storage == "s3":
            missing = [
                name
                for name in ("s3_bucket", "s3_access_key_id", "s3_access_key_secret")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValueError(f"storage=s3 requires {', '.join(ENV_PREFIX + m for m in missing)}")
        return self
