from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'erp_user'
    POSTGRES_PASSWORD: str = 'erp_pass'
    POSTGRES_DB: str = 'erp_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe la URL completa (ej. sqlite para tests)

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Pricing defaults
    DEFAULT_CURRENCY: str = 'EUR'
    DEFAULT_TAX_RATE: Decimal = Decimal('20')  # TVA en porcentaje
    QUOTATION_VALIDITY_DAYS: int = 30
    QUOTATION_PREFIX: str = 'DEV'
    SALES_ORDER_PREFIX: str = 'CMD'
    DEFAULT_PAYMENT_TERMS: str = '30 jours'
    DEFAULT_DELIVERY_TERMS: str = '2-4 semaines'

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("DEFAULT_TAX_RATE")
    @classmethod
    def validate_tax_rate(cls, v):
        if v < 0:
            raise ValueError('La tasa de impuesto por defecto no puede ser negativa')
        return v

settings = Settings()
