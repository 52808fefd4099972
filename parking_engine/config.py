from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: Optional[str] = None
    PGHOST: Optional[str] = None
    PGDATABASE: Optional[str] = None
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGSSLMODE: str = "require"

    # Application
    PROJECT_NAME: str = "Multi-Level Car Park"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Pricing
    CURRENCY: str = "INR"
    CURRENCY_MINOR_UNITS: int = 2
    OVERSTAY_PENALTY_ENABLED: bool = True

    # Slot allocation
    SLOT_CLAIM_MAX_ATTEMPTS: int = 3
    SLOT_CLAIM_BACKOFF_SECONDS: float = 0.05
    FLOOR_TRAVEL_DISTANCE: float = 100.0

    # Reservations & background sweeps
    MAX_RESERVATION_HOURS: int = 24
    SWEEP_INTERVAL_SECONDS: int = 300
    SWEEPER_ENABLED: bool = True
    RECONCILE_ON_STARTUP: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.PGHOST and self.PGDATABASE:
            return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
        return "sqlite:///./parking.db"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
