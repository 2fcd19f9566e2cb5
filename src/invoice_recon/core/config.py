from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoice-reconciliation-engine", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Azure Document Intelligence (text recognition)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model_id: str = Field("prebuilt-read", alias="AZ_DI_MODEL_ID")
    az_di_locale: str | None = Field(default=None, alias="AZ_DI_LOCALE")  # e.g. "ar"

    # Service Bus (reconciliation events, disabled when unset)
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue_name: str = Field("invoice-reconciliation-events", alias="SERVICE_BUS_QUEUE_NAME")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Matching tolerances
    match_relative_tolerance: float = Field(0.05, alias="MATCH_RELATIVE_TOLERANCE")
    match_absolute_tolerance: float = Field(1.0, alias="MATCH_ABSOLUTE_TOLERANCE")

    # Pipeline
    pipeline_max_concurrency: int = Field(1, alias="PIPELINE_MAX_CONCURRENCY")  # 1 = sequential
    recognition_timeout_seconds: float | None = Field(default=None, alias="RECOGNITION_TIMEOUT_SECONDS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
