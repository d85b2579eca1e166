"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # AWS
    aws_region: str = "us-east-1"
    documents_bucket: str = ""
    reports_bucket: str = ""

    # Knowledge base
    knowledge_base_id: str = ""
    data_source_id: str = ""
    generation_model_id: str = "meta.llama3-70b-instruct-v1:0"
    retrieval_results: int = 5

    # Storage namespaces
    incoming_prefix: str = "incoming/"
    processed_prefix: str = "processed/"
    reports_prefix: str = "reports/"

    # Presigned upload URL lifetime (seconds)
    upload_url_ttl_seconds: int = 900

    # Vector index provisioning
    collection_endpoint: str = ""
    index_name: str = "bedrock-knowledge-base-default-index"
    vector_dimension: int = 1024
    index_grace_period_seconds: float = 30.0
    index_max_attempts: int = 12
    index_retry_delay_seconds: float = 15.0
    index_request_timeout_seconds: float = 10.0

    # Report synthesis
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
