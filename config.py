import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    # Single admin credential; a role gate, not a security mechanism
    api_key: str = os.getenv("API_KEY", "admin123")

    # Storage settings
    data_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    seed_sample_data: bool = _env_flag("LIBRARY_SEED_SAMPLE_DATA", "True")

    # Spreadsheet export
    export_dir: str = os.getenv("EXPORT_DIR", ".")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
