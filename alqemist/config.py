from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./alqemist.db"

    # Identity provider session tokens (bearer JWT)
    identity_jwt_secret: str = "your-secret-key-change-in-production"
    identity_jwt_algorithm: str = "HS256"
    identity_jwt_issuer: str = ""  # empty = issuer not checked

    # Signing secret for identity provider user webhooks
    identity_webhook_secret: str = ""

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    # Model providers (empty key = provider disabled, its models are hidden)
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_ai_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Vertex AI for Google models (used instead of google_ai_api_key when set)
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC

    # Model selection
    default_model: str = "gpt-4o-mini"
    optimization_strategy: str = "balanced"  # cost | speed | quality | balanced
    model_fallback_enabled: bool = True
    max_output_tokens: int = 4096

    # Redis (optional cache for thread messages; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0
    thread_cache_ttl_seconds: int = 86400
    thread_cache_max_messages: int = 50

    # Streaming: words per SSE chunk and delay between chunks
    stream_word_group_size: int = 3
    stream_delay_ms: int = 20

    # Due-task sweep interval (0 = disabled)
    task_sweep_interval_seconds: int = 60

    # Optional webhook that receives task notifications (empty = log only)
    notification_webhook_url: str = ""
    notification_webhook_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
