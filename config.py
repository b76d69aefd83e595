import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Storage backend: "sqlite" (local file) or "rest" (hosted backend)
    storage_backend: str = os.getenv("STORAGE_BACKEND", "sqlite").lower()
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "library.db")
    seed_sample_rooms: bool = os.getenv("SEED_SAMPLE_ROOMS", "True").lower() in ("true", "1", "yes")

    # Hosted backend settings
    backend_url: str = os.getenv("BACKEND_URL", "http://localhost:54321")
    backend_key: Optional[str] = os.getenv("BACKEND_KEY")
    backend_timeout: float = float(os.getenv("BACKEND_TIMEOUT", "10"))

    # Preferences
    default_language: str = os.getenv("DEFAULT_LANGUAGE", "en")
    default_theme: str = os.getenv("DEFAULT_THEME", "system")
    preferences_file: str = os.getenv(
        "PREFERENCES_FILE",
        os.path.join(os.path.expanduser("~"), ".library-hub", "preferences.json"),
    )

    # Calendar settings
    calendar_preview_size: int = int(os.getenv("CALENDAR_PREVIEW_SIZE", "2"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Hub")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    environment: str = os.getenv("ENVIRONMENT", "development")


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the API and the CLI."""
    name = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
