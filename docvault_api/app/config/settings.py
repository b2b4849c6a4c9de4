"""Settings for the API."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_host: str = Field(..., validation_alias="DATABASE_HOST")
    database_port: int = Field(..., validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("docvault", validation_alias="DATABASE_NAME")
    database_collection: str = Field("documents", validation_alias="DATABASE_COLLECTION")

    broker_host: str = Field(..., validation_alias="BROKER_HOST")
    broker_port: int = Field(..., validation_alias="BROKER_PORT")
    broker_user: str = Field(..., validation_alias="BROKER_USER")
    broker_password: str = Field(..., validation_alias="BROKER_PASSWORD")

    queue_name: str = Field("document_processing", validation_alias="QUEUE_NAME")
    queue_max_length: int = Field(10_000, validation_alias="QUEUE_MAX_LENGTH")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(10, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")

    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")
    publish_timeout_seconds: float = Field(10.0, validation_alias="PUBLISH_TIMEOUT_SECONDS")

    publisher_backend: str = Field("rabbitmq", validation_alias="PUBLISHER_BACKEND")
    database_backend: str = Field("mongo", validation_alias="DATABASE_BACKEND")

    readiness_ping_timeout_seconds: float = Field(30.0, validation_alias="READINESS_PING_TIMEOUT_SECONDS")

    api_host: str = Field("0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(8080, validation_alias="API_PORT")

    ocr_service_url: str = Field("http://ocr-service:8000", validation_alias="OCR_SERVICE_URL")
    ocr_connect_timeout_seconds: float = Field(5.0, validation_alias="OCR_CONNECT_TIMEOUT_SECONDS")
    ocr_read_timeout_seconds: float = Field(30.0, validation_alias="OCR_READ_TIMEOUT_SECONDS")
    ocr_default_language: str = Field("pl", validation_alias="OCR_DEFAULT_LANGUAGE")
    stuck_task_timeout_minutes: int = Field(30, validation_alias="STUCK_TASK_TIMEOUT_MINUTES")
    stuck_warning_threshold: int = Field(3, validation_alias="STUCK_WARNING_THRESHOLD")
    dead_letter_critical_threshold: int = Field(20, validation_alias="DEAD_LETTER_CRITICAL_THRESHOLD")

    breaker_failure_threshold: int = Field(5, validation_alias="BREAKER_FAILURE_THRESHOLD")
    breaker_window_seconds: float = Field(60.0, validation_alias="BREAKER_WINDOW_SECONDS")
    breaker_cooldown_seconds: float = Field(30.0, validation_alias="BREAKER_COOLDOWN_SECONDS")
    breaker_half_open_max_calls: int = Field(1, validation_alias="BREAKER_HALF_OPEN_MAX_CALLS")
    breaker_success_threshold: int = Field(1, validation_alias="BREAKER_SUCCESS_THRESHOLD")
