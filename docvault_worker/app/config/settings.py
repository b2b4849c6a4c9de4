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

    # Redeliveries after a transient failure before the job is dead-lettered as FAILED. <= 0 disables.
    max_retries: int = Field(5, validation_alias="MAX_RETRIES")
    prefetch_count: int = Field(4, validation_alias="PREFETCH_COUNT")

    repository_backend: str = Field("mongo", validation_alias="REPOSITORY_BACKEND")
    consumer_backend: str = Field("rabbitmq", validation_alias="CONSUMER_BACKEND")
    search_backend: str = Field("meilisearch", validation_alias="SEARCH_BACKEND")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(10, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")

    ocr_service_url: str = Field("http://ocr-service:8000", validation_alias="OCR_SERVICE_URL")
    ocr_connect_timeout_seconds: float = Field(5.0, validation_alias="OCR_CONNECT_TIMEOUT_SECONDS")
    ocr_read_timeout_seconds: float = Field(30.0, validation_alias="OCR_READ_TIMEOUT_SECONDS")
    ocr_default_language: str = Field("pl", validation_alias="OCR_DEFAULT_LANGUAGE")
    ocr_status_poll_interval_seconds: float = Field(2.0, validation_alias="OCR_STATUS_POLL_INTERVAL_SECONDS")
    ocr_max_status_polls: int = Field(30, validation_alias="OCR_MAX_STATUS_POLLS")
    stuck_task_timeout_minutes: int = Field(30, validation_alias="STUCK_TASK_TIMEOUT_MINUTES")

    breaker_failure_threshold: int = Field(5, validation_alias="BREAKER_FAILURE_THRESHOLD")
    breaker_window_seconds: float = Field(60.0, validation_alias="BREAKER_WINDOW_SECONDS")
    breaker_cooldown_seconds: float = Field(30.0, validation_alias="BREAKER_COOLDOWN_SECONDS")
    breaker_half_open_max_calls: int = Field(1, validation_alias="BREAKER_HALF_OPEN_MAX_CALLS")
    breaker_success_threshold: int = Field(1, validation_alias="BREAKER_SUCCESS_THRESHOLD")

    search_url: str = Field("http://search:7700", validation_alias="SEARCH_URL")
    search_index_name: str = Field("documents", validation_alias="SEARCH_INDEX_NAME")
    search_api_key: str = Field("", validation_alias="SEARCH_API_KEY")
    search_timeout_seconds: float = Field(10.0, validation_alias="SEARCH_TIMEOUT_SECONDS")
