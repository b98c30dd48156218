from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict

FEATURES = ("amount", "time", "frequency", "category", "merchant")

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRACKIFY_")

    APP_NAME: str = Field("Trackify", description="Prefix for logger names")
    LOG_LEVEL: str = Field("INFO", description="Root level for engine loggers")
    LOG_DIR: str = Field("./data/logs", description="Directory for rotating log files")

    # Detection gates
    MIN_HISTORICAL_DATA: int = Field(10, description="Minimum expenses needed for detection")
    ANALYSIS_WINDOW_DAYS: int = Field(90, description="Days to look back for patterns")

    # Thresholds
    AMOUNT_ANOMALY_THRESHOLD: float = 2.5      # standard deviations
    FREQUENCY_ANOMALY_THRESHOLD: float = 3.0   # times normal weekly frequency

    # Composite score weights (pattern check is not weighted)
    ANOMALY_SCORE_WEIGHTS: Dict[str, float] = {
        "amount": 0.30,
        "time": 0.15,
        "frequency": 0.20,
        "category": 0.15,
        "merchant": 0.20,
    }

    @field_validator("ANOMALY_SCORE_WEIGHTS")
    @classmethod
    def _weights_cover_features(cls, v: Dict[str, float]) -> Dict[str, float]:
        if set(v) != set(FEATURES):
            raise ValueError(f"weights must name exactly {FEATURES}, got {sorted(v)}")
        if abs(sum(v.values()) - 1.0) > 1e-9:
            raise ValueError(f"weights must sum to 1.0, got {sum(v.values())}")
        return v

settings = Settings()
