from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.models import ParseErrorPolicy, Strictness


class Settings(BaseSettings):
    app_name: str = "Log Shipper"
    environment: str = "dev"
    log_level: str = "INFO"
    index_endpoint: str = "my-search-endpoint.amazonaws.com"
    index_region: str = "us-east-1"
    index_name: str = "logs"
    index_doc_type: str = "apache"
    index_scheme: Literal["http", "https"] = "https"
    index_service: str = "es"
    request_timeout: float = 10.0
    log_format: Literal["clf", "jsonl"] = "clf"
    stream_format: Literal["clf", "jsonl"] = "jsonl"
    strictness: Strictness = Field(
        default=Strictness.FAIL_FAST,
        description=(
            "How failed submissions end a run. fail_fast stops at the first rejected "
            "or undeliverable document; parse errors follow parse_error_policy instead."
        ),
    )
    parse_error_policy: ParseErrorPolicy = Field(
        default=ParseErrorPolicy.SKIP,
        description="What an unparseable line does: skip drops and counts it, abort fails the run.",
    )
    max_concurrency: int = Field(default=4, ge=1)
    read_chunk_size: int = Field(default=64 * 1024, ge=1)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
