"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    documents_dir: Path = Path("documents")
    currency_suffix: str = "€"

    # Headless browser limits (milliseconds)
    render_max_concurrent: int = 2
    render_queue_timeout_ms: int = 30000
    render_timeout_ms: int = 60000
    request_deadline_ms: int = 90000
    chromium_executable: Optional[str] = None

    s3_bucket: Optional[str] = None
    s3_prefix: str = "filled/"
    s3_public_base_url: Optional[str] = None
    s3_url_expires: int = 3600
    aws_region: Optional[str] = None

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            documents_dir=Path(os.getenv("DOCUMENTS_DIR", "documents")),
            currency_suffix=os.getenv("CURRENCY_SUFFIX", "€"),
            render_max_concurrent=env_int("RENDER_MAX_CONCURRENT", 2),
            render_queue_timeout_ms=env_int("RENDER_QUEUE_TIMEOUT_MS", 30000, minimum=0),
            render_timeout_ms=env_int("RENDER_TIMEOUT_MS", 60000, minimum=1000),
            request_deadline_ms=env_int("REQUEST_DEADLINE_MS", 90000, minimum=1000),
            chromium_executable=os.getenv("CHROMIUM_EXECUTABLE") or None,
            s3_bucket=os.getenv("S3_BUCKET") or None,
            s3_prefix=os.getenv("S3_PREFIX", "filled/"),
            s3_public_base_url=os.getenv("S3_PUBLIC_BASE_URL") or None,
            s3_url_expires=env_int("S3_URL_EXPIRES", 3600),
            aws_region=os.getenv("AWS_REGION") or None,
            cors_origins=env_list("CORS_ORIGINS", ["*"]),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
