from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "vod-intake"
    app_version: str = "dev"
    database_url: str = "sqlite:///./vod_intake.db"
    storage_backend: str = "local"
    storage_root: str = "./data"
    s3_bucket: str = ""
    aws_region: str = "us-east-1"
    r2_bucket: str = ""
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_endpoint_url: str = ""
    blob_connect_timeout_seconds: float = 5.0
    blob_read_timeout_seconds: float = 60.0
    blob_max_attempts: int = 1
    min_chunk_size_bytes: int = 256 * 1024
    max_chunk_size_bytes: int = 5 * 1024 * 1024
    max_simple_upload_bytes: int = 5 * 1024 * 1024
    tracing_enabled: bool = False
    tracing_service_name: str = "vod-intake"
    otlp_endpoint: str = "localhost:4317"
    otlp_insecure: bool = True


settings = Settings()
