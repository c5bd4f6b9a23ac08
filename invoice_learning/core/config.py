from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoice-learning", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Storage
    data_dir: Path = Field(Path.home() / ".invoice_learning", alias="DATA_DIR")
    schemas_file: Path | None = Field(default=None, alias="SCHEMAS_FILE")
    corrections_file: Path | None = Field(default=None, alias="CORRECTIONS_FILE")

    # Learning
    max_corrections: int = Field(10_000, alias="MAX_CORRECTIONS")
    schema_match_threshold: float = Field(5.0, alias="SCHEMA_MATCH_THRESHOLD")

    # Extraction
    extraction_max_workers: int = Field(4, alias="EXTRACTION_MAX_WORKERS")
    date_window_past_years: int = Field(5, alias="DATE_WINDOW_PAST_YEARS")
    date_window_future_years: int = Field(10, alias="DATE_WINDOW_FUTURE_YEARS")

    # Azure Document Intelligence (OCR provider)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model: str = Field("prebuilt-read", alias="AZ_DI_MODEL")

    # Optional spaCy NER for organization names
    spacy_model: str = Field("en_core_web_sm", alias="SPACY_MODEL")

    # Observability
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def resolved_schemas_file(self) -> Path:
        return self.schemas_file or self.data_dir / "schemas" / "user_schemas.json"

    @property
    def resolved_corrections_file(self) -> Path:
        return self.corrections_file or self.data_dir / "correction_history" / "corrections.json"

settings = Settings()
