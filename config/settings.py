"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # API
    api_title: str = "Supply Reports API"
    api_version: str = "1.0.0"

    # Breakdowns
    report_top_n: int = 10  # destination / school / supplier / source rows

    # Processing time
    max_processing_days: float = 365.0  # samples at or above this are outliers
    processing_time_default_days: float = 0.0  # returned when no sample survives

    # Data quality
    total_mismatch_tolerance: float = 0.5  # cached total vs line-item sum, in units


settings = Settings()
