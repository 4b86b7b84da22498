from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "FieldGates"
    # Photo uploads larger than this are rejected before any storage attempt.
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    upload_max_attempts: int = 3
    # Linear backoff: attempt N waits N * upload_backoff_seconds before retrying.
    upload_backoff_seconds: float = 1.0
    # A job is flagged for manager review once its exception count exceeds this.
    exception_review_threshold: int = 2
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def db_path(self) -> Path:
        return self.data_path / "db.sqlite"

    @property
    def photos_dir(self) -> Path:
        return self.data_path / "photos"

    model_config = {"env_prefix": "FIELDGATES_"}


settings = Settings()
