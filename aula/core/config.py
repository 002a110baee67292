from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Aula"
    ENVIRONMENT: Literal["development", "production"] = "development"
    AUTH_MODE: Literal["jwt", "mock"] = "jwt"

    DATABASE_URL: str = "sqlite:///./aula.db"
    SQL_ECHO: bool = False

    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_HOURS: int = 8
    RESET_TOKEN_TTL_MINUTES: int = 15

    FRONTEND_URL: str = "http://localhost:5173/reset-password"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""
    EMAILJS_PRIVATE_KEY: str = ""
    EMAILJS_TEMPLATE_ID: str = ""

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def emailjs_configured(self) -> bool:
        return all([
            self.EMAILJS_SERVICE_ID,
            self.EMAILJS_PUBLIC_KEY,
            self.EMAILJS_PRIVATE_KEY,
            self.EMAILJS_TEMPLATE_ID,
        ])


settings = Settings()
