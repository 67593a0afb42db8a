# app/core/config.py

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # MongoDB settings
    MONGODB_URI: str = Field(default="mongodb://localhost:27017")
    MONGODB_DB: str = Field(default="portal_cereri")

    # Runtime
    APP_ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(default=["*"])
    TIMEZONE: str = Field(default="Europe/Bucharest")

    # Listing
    REQUESTS_LIST_LIMIT: int = Field(default=100, gt=0)
    REQUESTS_LIST_MAX_LIMIT: int = Field(default=500, gt=0)

    # Practice details printed on approved enrollment forms
    CLINIC_NAME: str = Field(default="Cabinet Medical Individual")
    CLINIC_CUI: str = Field(default="RO12345678")
    CLINIC_ADDRESS: str = Field(default="Bucuresti, Str. Exemplu, Nr. 1")
    INSURANCE_HOUSE: str = Field(default="CNAS")
    CONTRACT_NUMBER: str = Field(default="123/2024")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

settings = Settings()
