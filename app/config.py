"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Service
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000

    # Queues (Queue A: intake -> enrichment, Queue B: enrichment -> description)
    intake_queue_url: str = "memory://intake"
    description_queue_url: str = "memory://description"
    visibility_timeout_seconds: int = 300
    max_receive_count: int = 3
    worker_poll_interval_seconds: float = 1.0

    # Record store
    table_name: str = "city-processing"
    record_store_backend: str = "memory"  # "memory" or "supabase"
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Notifications
    notification_topic: str = "city-processing-notifications"

    # Weather provider
    openweather_api_key: Optional[str] = None
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"

    # Text generation provider
    description_provider: str = "openai"  # "openai" or "template"
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-3.5-turbo"
    provider_timeout_seconds: float = 10.0

    # Stage execution budgets
    intake_budget_seconds: float = 30.0
    enrichment_budget_seconds: float = 60.0
    description_budget_seconds: float = 60.0

    # Coordination knobs
    retry_business_failures: bool = False
    strict_transitions: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
