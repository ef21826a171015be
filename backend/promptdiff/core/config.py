"""
Core configuration for promptdiff
"""
from pydantic_settings import BaseSettings
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    # ===========================================
    # APPLICATION
    # ===========================================

    APP_NAME: str = "promptdiff"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Line-level diffs of the prompts embedded in published CLI releases"

    # ===========================================
    # SERVER & INFRASTRUCTURE
    # ===========================================

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    BACKEND_HOST: str = "127.0.0.1"  # Bind address (use 0.0.0.0 to expose externally)
    BACKEND_PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:8000"]

    # ===========================================
    # PACKAGE REGISTRY
    # ===========================================

    NPM_REGISTRY_URL: str = "https://registry.npmjs.org"
    PACKAGE_NAME: str = "@anthropic-ai/claude-code"
    REGISTRY_TIMEOUT: float = 30.0
    TARBALL_TIMEOUT: float = 120.0  # Tarballs of recent releases are tens of MB
    USER_AGENT: str = "promptdiff/1.0"

    # ===========================================
    # EXTRACTION
    # ===========================================

    # Files inside the tarball that hold the bundled CLI source
    CLI_ENTRY_PATHS: List[str] = ["package/cli.js", "package/cli.mjs"]

    # Upper bound on the decompressed tarball (guards against gzip bombs)
    MAX_ARCHIVE_SIZE_MB: int = 512

    # Per-version extraction results kept in memory. 0 = unbounded.
    EXTRACTION_CACHE_SIZE: int = 0

    # Tab shown when a comparison does not name one
    DEFAULT_TAB: str = "system"

    @property
    def max_archive_bytes(self) -> int:
        return self.MAX_ARCHIVE_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_info(self) -> dict:
        """Public service information for the frontend"""
        return {
            "app_name": self.APP_NAME,
            "version": self.APP_VERSION,
            "description": self.APP_DESCRIPTION,
            "package": self.PACKAGE_NAME,
            "registry": self.NPM_REGISTRY_URL,
        }


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
