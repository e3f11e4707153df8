"""
ClaimRisk Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

# Render sets RENDER=true automatically
_ON_RENDER = os.getenv("RENDER", "").lower() == "true"
_DEFAULT_DB_PATH = "/data/claimrisk_jobs.db" if _ON_RENDER else "claimrisk_jobs.db"


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    ENGINE_VERSION: str = "2.1.0"
    API_VERSION: str = "1"

    # --- Text Generation Provider ---
    LLM_PROVIDER: str = os.getenv("CLAIMRISK_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    PROVIDER_TIMEOUT: float = float(os.getenv("CLAIMRISK_PROVIDER_TIMEOUT", "60"))

    # --- Job Store ---
    DB_PATH: str = os.getenv("CLAIMRISK_DB_PATH", _DEFAULT_DB_PATH)

    # --- Configuration Data ---
    # Empty means the JSON files shipped inside the package
    CATALOG_DIR: str = os.getenv("CLAIMRISK_CATALOG_DIR", "")

    # --- Worker ---
    POLL_INTERVAL: float = float(os.getenv("CLAIMRISK_POLL_INTERVAL", "1.5"))
    MAX_ATTEMPTS: int = int(os.getenv("CLAIMRISK_MAX_ATTEMPTS", "3"))
    STALE_AFTER_SECONDS: int = int(os.getenv("CLAIMRISK_STALE_AFTER_SECONDS", "600"))

    # --- Page Fetch ---
    FETCH_TIMEOUT: float = float(os.getenv("CLAIMRISK_FETCH_TIMEOUT", "30"))
    FETCH_MAX_CHARS: int = int(os.getenv("CLAIMRISK_FETCH_MAX_CHARS", "50000"))

    # --- Disambiguation ---
    DISAMBIGUATION_CACHE_TTL: int = int(
        os.getenv("CLAIMRISK_DISAMBIGUATION_TTL", str(48 * 60 * 60))
    )

    # --- Server ---
    HOST: str = os.getenv("CLAIMRISK_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("CLAIMRISK_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("CLAIMRISK_CORS_ORIGINS", "*")


settings = Settings()
