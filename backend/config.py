from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings
from slowapi import Limiter
from slowapi.util import get_remote_address

BACKEND_DIR = Path(__file__).parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Preview viewport shared by the rendered surface and the target image
    preview_width: int = 400
    preview_height: int = 300

    # Per-channel tolerance for two pixels to count as matching
    compare_tolerance: int = 5

    # Upper bound on each capture step (rendering the surface, loading the target)
    capture_timeout_sec: float = 15.0
    image_fetch_timeout_sec: float = 30.0
    # If True, an unreadable embedded image aborts the capture instead of rendering blank
    strict_subresources: bool = False

    # Challenge dataset produced by the ingestion job
    challenges_path: Path = BACKEND_DIR / "challenges.json"
    challenge_images_dir: Path = BACKEND_DIR / "challenge_images"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    compare_rate_limit: str = "30/minute"  # per client, on each comparison endpoint

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors(cls, v: object) -> list[str]:
        """Accept both a JSON list and a comma-separated string for CORS_ORIGINS."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v  # type: ignore[return-value]

    @field_validator("compare_tolerance")
    @classmethod
    def _check_tolerance(cls, v: int) -> int:
        if not 0 <= v <= 255:
            raise ValueError("compare_tolerance must be between 0 and 255")
        return v

    # Observability
    sentry_dsn: str = ""
    environment: str = "development"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


settings = Settings()

limiter = Limiter(key_func=get_remote_address)
