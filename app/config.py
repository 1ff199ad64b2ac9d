"""App configuration for storage, exports and logging."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import tempfile


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    s3_bucket: str
    s3_prefix: str
    inline_max_bytes: int
    presign_expiry_seconds: int
    local_storage_dir: str
    export_dir: str
    export_text: bool
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        """Create settings from environment variables with defaults."""
        def to_bool(value: str | None, default: bool) -> bool:
            if value is None:
                return default
            normalized = value.strip().lower()
            if normalized in {"1", "true", "yes", "on"}:
                return True
            if normalized in {"0", "false", "no", "off"}:
                return False
            return default

        s3_bucket = os.getenv("S3_BUCKET", "").strip()
        s3_prefix = os.getenv("S3_PREFIX", "coax-results/").strip()
        inline_max_bytes = int(os.getenv("INLINE_MAX_BYTES", "200000"))
        presign_expiry_seconds = int(os.getenv("PRESIGN_EXPIRY_SECONDS", "3600"))
        default_local_dir = os.path.join(tempfile.gettempdir(), "coax_results")
        local_storage_dir = os.getenv("LOCAL_STORAGE_DIR", default_local_dir)
        export_dir = os.getenv("EXPORT_DIR", os.path.join(local_storage_dir, "exports")).strip()
        export_text = to_bool(os.getenv("EXPORT_TEXT"), False)
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        return Settings(
            s3_bucket=s3_bucket,
            s3_prefix=s3_prefix,
            inline_max_bytes=inline_max_bytes,
            presign_expiry_seconds=presign_expiry_seconds,
            local_storage_dir=local_storage_dir,
            export_dir=export_dir,
            export_text=export_text,
            log_level=log_level,
        )


def configure_logging(level: str | int | None = None) -> None:
    """Install a root handler once; later calls only adjust the level."""
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    root.setLevel(level)


settings = Settings.from_env()
