from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Company Enrichment"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Providers
    openai_api_key: str | None = None
    perplexity_api_key: str | None = None
    firecrawl_api_key: str | None = None

    # Models
    search_model: str = "sonar-pro"
    search_base_url: str = "https://api.perplexity.ai"
    analysis_model: str = "gpt-4o-mini"
    analysis_base_url: str | None = None
    search_temperature: float = 0.1
    analysis_temperature: float = 0.1
    model_timeout_seconds: float = 120.0
    model_retry_attempts: int = 3
    model_retry_base_delay: float = 1.0

    # Scraping
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    scrape_timeout_seconds: float = 30.0
    scrape_batch_size: int = 3
    page_char_budget: int = 5000

    # Storage
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_companies_table: str = "enriched_companies"

    # Pipeline
    enrichment_output_dir: str = "output"
    enrichment_force_deep_research: bool = False

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "enrichment"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125
    metrics_schema_version: str = "enrichment.v1"

    @property
    def search_api_key(self) -> str | None:
        """Search model credentials; Perplexity first, OpenAI when the search model is hosted there."""
        if self.search_base_url and "perplexity" in self.search_base_url:
            return self.perplexity_api_key
        return self.perplexity_api_key or self.openai_api_key

    model_config = ConfigDict(env_file=".env", case_sensitive=False, protected_namespaces=())


settings = Settings()
