from pydantic import validator
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database
    PGHOST: str = "localhost"
    PGDATABASE: str = "bus_booking"
    PGUSER: str = "postgres"
    PGPASSWORD: str = "postgres"
    PGSSLMODE: str = "prefer"
    DATABASE_URL: Optional[str] = None
    
    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    
    # Payment gateway
    PAYMENT_CHECKSUM_KEY: str = "change-me-checksum"
    BACKEND_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:5173"
    PAYMENT_LINK_TTL_MINUTES: int = 60
    
    # Booking lifecycle
    PENDING_TIMEOUT_MINUTES: int = 5
    EXPIRING_SOON_MINUTES: int = 3
    CLEANUP_INTERVAL_MINUTES: int = 5
    ENABLE_EXPIRY_SWEEPER: bool = True
    MAX_SEATS_PER_BOOKING: int = 10
    
    # Application
    PROJECT_NAME: str = "Bus Ticket Booking System"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    
    @validator("PENDING_TIMEOUT_MINUTES")
    def validate_pending_timeout(cls, v):
        if v < 1 or v > 60:
            raise ValueError("PENDING_TIMEOUT_MINUTES must be between 1 and 60")
        return v
    
    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
    
    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
