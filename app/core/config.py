"""애플리케이션 전역 설정을 관리하는 모듈."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """환경 변수 기반 설정 모델."""

    OPENAI_API_KEY: str
    SERVICE_SECRET: str
    LLM_MODEL_NAME: str = "gpt-4o-mini"
    ENABLE_STAGE_LLM_ROUTING: bool = False
    LLM_MODEL_QUALITY: str = ""
    LLM_MODEL_SPEED: str = ""
    LLM_TEMPERATURE: float = 0.7
    LLM_EXTRACTION_TEMPERATURE: float = 0.3
    REQUEST_TIMEOUT_SECONDS: int = 60
    LLM_TIMEOUT_SECONDS: int = 25
    EXTERNAL_API_TIMEOUT_SECONDS: int = 15
    GOOGLE_PLACES_API_KEY: str | None = None
    GOOGLE_PLACES_TIMEOUT_SECONDS: int = 10
    GOOGLE_PLACES_LANGUAGE_CODE: str = "th"
    GOOGLE_PLACES_REGION_CODE: str = "th"
    PLACES_CACHE_TTL_DAYS: int = 30
    PLACES_CONTEXT_CHECK_ENABLED: bool = True
    PLACES_CACHE_RADIUS_KM: float = 5.0
    PLACE_RESOLVE_CONCURRENCY: int = 4
    CHAT_SESSION_MAX: int = 1000
    CHAT_SESSION_IDLE_SECONDS: int = 3600
    DESTINATION_BATCH_SIZE: int = 5
    DEFAULT_TRIP_DAYS: int = 2
    DEFAULT_LANGUAGE: str = "th"
    DATABASE_URL: str = "sqlite:///./tripmate.db"
    APP_ENV: str = "development"
    DOCS_MODE: str = "disabled"
    EXPOSE_INTERNAL_ERRORS: bool = False
    CORS_ALLOW_ORIGINS: str = ""
    CORS_ALLOW_METHODS: str = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
    CORS_ALLOW_HEADERS: str = "Authorization,Content-Type,x-service-secret"
    CORS_ALLOW_CREDENTIALS: bool = False
    SECURITY_HEADERS_ENABLED: bool = True
    ENABLE_HSTS: bool = False
    HSTS_MAX_AGE_SECONDS: int = 31536000
    TRUSTED_HOSTS: str = ""
    PROXY_HEADERS_ENABLED: bool = False
    PROXY_TRUSTED_HOSTS: str = "127.0.0.1"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("PLACE_RESOLVE_CONCURRENCY", mode="before")
    @classmethod
    def _clamp_place_resolve_concurrency(cls, value: object) -> int:
        try:
            numeric = int(value) if value is not None else 4
        except (TypeError, ValueError):
            numeric = 4
        return min(16, max(1, numeric))

    @field_validator("DESTINATION_BATCH_SIZE", mode="before")
    @classmethod
    def _clamp_destination_batch_size(cls, value: object) -> int:
        try:
            numeric = int(value) if value is not None else 5
        except (TypeError, ValueError):
            numeric = 5
        return min(50, max(1, numeric))

    @field_validator("PLACES_CACHE_TTL_DAYS", "DEFAULT_TRIP_DAYS", mode="before")
    @classmethod
    def _ensure_positive_days(cls, value: object) -> int:
        try:
            numeric = int(value) if value is not None else 1
        except (TypeError, ValueError):
            numeric = 1
        return max(1, numeric)


@lru_cache
def get_settings() -> Settings:
    """Settings 인스턴스를 반환한다. 최초 호출 시에만 생성되고 이후 캐싱된다."""
    return Settings()
