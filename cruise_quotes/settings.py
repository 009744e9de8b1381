from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://localhost/cruise_quotes"

    # 업로드 파일 저장소
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB

    # Ollama (견적 추출 모델)
    ollama_base_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "qwen3:8b"
    ollama_timeout: float = 120.0
    ollama_retry_count: int = 3  # tenacity 재시도 횟수
    ollama_json_format: bool = True

    # 워커
    worker_poll_interval: float = 5.0
    worker_concurrency: int = 1
    worker_abandoned_after_seconds: int = 0  # 0 = 방치된 RUNNING 잡 정리 비활성화

    default_currency: str = "CNY"
    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("ollama_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v

    @field_validator("ollama_timeout")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("타임아웃은 0 이상이어야 합니다.")
        return v

    @field_validator("worker_poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("폴링 간격은 0보다 커야 합니다.")
        return v

    @field_validator("ollama_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("retry_count는 1에서 10 사이여야 합니다.")
        return v

    @field_validator("worker_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError("worker_concurrency는 1에서 32 사이여야 합니다.")
        return v

    @field_validator("max_upload_bytes")
    @classmethod
    def validate_max_upload(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_upload_bytes는 0보다 커야 합니다.")
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3:
            raise ValueError("통화 코드는 3자리여야 합니다.")
        return v.upper()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
