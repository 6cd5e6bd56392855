"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
LOCAL_STORE_DIR = DATA_DIR / "local_store"


class Config:
    """Application configuration."""

    # Supabase
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: str | None = os.getenv("SUPABASE_SERVICE_ROLE")
    SUPABASE_ANON_KEY: str | None = os.getenv("SUPABASE_ANON_KEY")
    PRODUCTS_TABLE: str = os.getenv("PRODUCTS_TABLE", "products")
    PRICE_TABLE: str = os.getenv("PRICE_TABLE", "price_data")
    JOBS_TABLE: str = os.getenv("JOBS_TABLE", "scraping_jobs")

    # Fetching
    FETCH_PAGE_SIZE: int = int(os.getenv("FETCH_PAGE_SIZE", "1000"))
    BRAND_TREND_WINDOW: int = int(os.getenv("BRAND_TREND_WINDOW", "100"))

    # Ingest
    PROGRESS_EVERY: int = int(os.getenv("PROGRESS_EVERY", "50"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API Security
    API_KEY: str | None = os.getenv("API_KEY")

    @classmethod
    def validate(cls, require_supabase: bool = True) -> None:
        """Validate required configuration."""
        errors = []
        if require_supabase:
            if not cls.SUPABASE_URL:
                errors.append("SUPABASE_URL is required")
            if not cls.SUPABASE_SERVICE_ROLE and not cls.SUPABASE_ANON_KEY:
                errors.append("SUPABASE_SERVICE_ROLE or SUPABASE_ANON_KEY is required")
        if cls.FETCH_PAGE_SIZE <= 0:
            errors.append("FETCH_PAGE_SIZE must be positive")
        if cls.BRAND_TREND_WINDOW < 2:
            errors.append("BRAND_TREND_WINDOW must be at least 2")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @classmethod
    def supabase_key(cls) -> str | None:
        """Service role key when available, anon key otherwise."""
        return cls.SUPABASE_SERVICE_ROLE or cls.SUPABASE_ANON_KEY


config = Config()
