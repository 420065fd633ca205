"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://leadflow:leadflow@db:5432/leadflow"

    # Language-model provider
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o"
    SYNTHESIS_MODEL: str = "gpt-4o"

    # Market-research provider (OpenAI-compatible API)
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_MODEL: str = "sonar-pro"
    PERPLEXITY_BASE_URL: str = "https://api.perplexity.ai"

    # Search provider
    EXA_API_KEY: Optional[str] = None
    EXA_BASE_URL: str = "https://api.exa.ai"

    # Crawl provider
    FIRECRAWL_API_KEY: Optional[str] = None
    FIRECRAWL_BASE_URL: str = "https://api.firecrawl.dev"
    FIRECRAWL_POLL_INTERVAL_SECONDS: float = 2.0
    FIRECRAWL_MAX_POLLS: int = 30

    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Scoring
    SQL_THRESHOLD: float = 70.0
    MQL_THRESHOLD: float = 40.0
    GATHERING_MAX_ROUNDS: int = 2

    # Workflow engine
    WORKFLOW_MAX_RETRIES: int = 3
    WORKFLOW_RETRY_BACKOFF_SECONDS: float = 10.0
    WORKFLOW_LEASE_SECONDS: int = 300
    WORKER_CONCURRENCY: int = 4
    WORKER_POLL_SECONDS: int = 5
    WORKER_BATCH_SIZE: int = 20
    ENABLE_WORKER: bool = True

    # Enrichment behaviour
    COMPANY_CACHE_DAYS: int = 7
    MOCK_BEHAVIORAL_DATA: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
