from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./chatbot.db"

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # CORS (frontend origins; "*" disables credentialed requests)
    cors_origins: list[str] = ["http://localhost:3000"]

    # Server
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    # Gemini: API key (Google AI Studio) takes precedence over Vertex AI
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-1.5-flash"

    # Turn orchestration
    chat_max_output_tokens: int = 800
    chat_context_max_messages: int = 20

    # Redis (optional context cache; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0
    redis_connect_timeout_seconds: float = 2.0

    # Context cache TTL in seconds (1 day)
    chat_cache_ttl_seconds: int = 86400

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
