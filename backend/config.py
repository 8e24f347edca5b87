# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, List, Optional
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./jewelry_backoffice.db"

    # Bearer tokens are issued by the external auth service; we only verify them
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"

    FRONTEND_URL: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # Catalog defaults
    DEFAULT_CURRENCY: str = "CRC"
    DEFAULT_MIN_STOCK: int = 5

    # Composition limits
    MAX_VARIANTS_PER_PRODUCT: int = 100
    MAX_COMPONENTS_PER_SET: int = 20
    MAX_COMPOSITE_DEPTH: int = 10

    # Storefront assembly
    MAX_CONSECUTIVE_CATEGORY: int = 3
    CATALOG_MAX_BASE_ROWS: int = 2000
    CATALOG_DEFAULT_PAGE_SIZE: int = 20
    CATALOG_MAX_PAGE_SIZE: int = 100

    # Empty list accepts any http(s) image URL
    IMAGE_URL_ALLOWED_HOSTS: List[str] = []

    class Config:
        env_file: ClassVar[str] = str(env_path)

settings = Settings()
