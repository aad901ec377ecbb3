import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Store settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "bookstore.db")
    store_timeout: float = float(os.getenv("BOOKSTORE_STORE_TIMEOUT", "5"))

    # Input settings
    date_format: str = os.getenv("BOOKSTORE_DATE_FORMAT", "%d.%m.%Y")

    # Console settings
    output_mode: str = os.getenv("LIB_CLI_OUTPUT", "plain")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Bookstore Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    static_dir: str = os.getenv(
        "BOOKSTORE_STATIC_DIR",
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "static"),
    )


settings = Settings()

logging.basicConfig(level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO))
