import logging
from pathlib import Path
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def resolve_project_path(value: str) -> Path:
    """
    Returns `value` as an absolute path.
    Relative paths are resolved against the project root.
    """
    path = Path(value)
    if path.is_absolute():
        return path
    # Project root is 4 levels up from this file:
    # backend/export_service/src/export_service/config.py -> project_root/
    project_root = Path(__file__).resolve().parents[4]
    return project_root / path


class Settings(BaseSettings):
    """
    Configuration settings for the Export service.
    Settings are loaded from environment variables and/or a .env file.
    """

    # --- General Service Settings ---
    SERVICE_NAME: str = Field(default="export_service", description="Name of the service.")
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level for the service."
    )
    API_VERSION: str = Field(default="v1", description="API version prefix for the docs endpoints.")

    # --- Public URL Settings ---
    BACKEND_URL: str = Field(
        default="http://localhost:3001",
        description="Public base URL of this backend, used to build links to downloaded exports."
    )

    # --- Storage Settings ---
    # Relative paths are resolved against the project root, absolute paths are used as is
    PUBLIC_DIR: str = Field(
        default="public",
        description="Directory served publicly under /public."
    )
    EXPORTS_SUBDIR: str = Field(
        default="exports",
        description="Sub-directory of PUBLIC_DIR that receives downloaded exports."
    )
    DATABASE_FILE_PATH: str = Field(
        default="data/db.json",
        description="Path to the JSON document holding the product records."
    )

    # --- File Watcher Settings ---
    ENABLE_HOT_RELOAD: bool = Field(
        default=True,
        description="Whether to watch the database file and reload it when edited externally."
    )
    FILE_WATCH_INTERVAL_SECONDS: float = Field(
        default=2.0,
        description="Polling interval in seconds used by the database file watcher."
    )

    # --- Download Settings ---
    DOWNLOAD_CHUNK_SIZE: int = Field(
        default=64 * 1024,
        description="Size in bytes of the chunks streamed from the export host to disk."
    )

    # --- CORS Settings ---
    CORS_ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],  # Default Vite dev server
        description="List of allowed origins for CORS."
    )

    # --- API Server Settings (for debugging/testing) ---
    API_HOST: str = Field(default="0.0.0.0", description="Host to bind the API server to.")
    API_PORT: int = Field(default=3001, description="Port to bind the API server to.")

    model_config = SettingsConfigDict(
        env_file=".env",  # Load .env file if present
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables
        case_sensitive=False,
    )

    def get_public_dir(self) -> Path:
        """Returns the absolute path of the publicly served directory."""
        return resolve_project_path(self.PUBLIC_DIR)

    def get_exports_dir(self) -> Path:
        """Returns the absolute path of the directory receiving downloaded exports."""
        return self.get_public_dir() / self.EXPORTS_SUBDIR

    def get_database_path(self) -> Path:
        """Returns the absolute path to the JSON product database."""
        return resolve_project_path(self.DATABASE_FILE_PATH)

    def get_exports_base_url(self) -> str:
        """
        Returns the public URL under which the exports directory is served,
        e.g. ``http://localhost:3001/public/exports``.
        """
        return f"{self.BACKEND_URL.rstrip('/')}/public/{self.EXPORTS_SUBDIR.strip('/')}"


# Initialize settings globally for easy access
settings = Settings()

# Configure logging based on settings
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(settings.SERVICE_NAME)

logger.debug(f"Export service settings loaded: {settings.model_dump()}")
logger.debug(f"Absolute exports directory: {settings.get_exports_dir()}")
logger.debug(f"Absolute database file path: {settings.get_database_path()}")

if __name__ == "__main__":
    # Print the loaded settings, useful for debugging the .env setup
    print("Loaded Export Service Settings:")
    for field_name, value in settings.model_dump().items():
        print(f"  {field_name}: {value}")

    print(f"\nExports directory: {settings.get_exports_dir()}")
    print(f"Database file: {settings.get_database_path()}")
    print(f"Database file exists: {settings.get_database_path().exists()}")
