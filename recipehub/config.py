from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SECRET_KEY = "development-secret-change-me"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from exc


@dataclass
class Settings:
    """Runtime configuration for the web application."""

    secret_key: str = DEFAULT_SECRET_KEY
    gcp_project: Optional[str] = None
    collection_prefix: str = ""
    bucket_name: Optional[str] = None
    max_upload_mb: int = 16
    upload_workers: int = 4
    session_token_max_age: int = 3600
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a local ``.env`` file)."""

        load_dotenv()
        return cls(
            secret_key=os.environ.get("FLASK_SECRET_KEY", DEFAULT_SECRET_KEY),
            gcp_project=os.environ.get("GCP_PROJECT"),
            collection_prefix=os.environ.get("FIRESTORE_COLLECTION_PREFIX", ""),
            bucket_name=os.environ.get("GCS_BUCKET"),
            max_upload_mb=_int_env("MAX_UPLOAD_MB", 16),
            upload_workers=max(1, _int_env("UPLOAD_WORKERS", 4)),
            session_token_max_age=_int_env("SESSION_TOKEN_MAX_AGE", 3600),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


__all__ = ["Settings"]
