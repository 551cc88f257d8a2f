import os
from dataclasses import dataclass
from pathlib import Path

from arena_logs.events import LogFormat

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEFAULT_REQUEST_TIMEOUT = 30


@dataclass(slots=True)
class Config:
    input_dir: Path
    output_dir: Path
    database_url: str
    max_workers: int | None = None
    log_format: LogFormat | None = None
    region: str = "eu"
    wow_client_id: str = ""
    wow_client_secret: str = ""
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.wow_client_id and self.wow_client_secret)


def _int_env(name: str, default: int | None) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw.isdigit() else default


def load_config_from_env() -> Config:
    input_dir = Path(os.getenv("ARENA_LOG_INPUT_DIR", PROJECT_ROOT / "logs"))
    output_dir = Path(os.getenv("ARENA_OUTPUT_DIR", PROJECT_ROOT / "output"))
    database_url = os.getenv("ARENA_DATABASE_URL") or f"sqlite:///{output_dir / 'arena.db'}"
    try:
        log_format = LogFormat.parse(os.getenv("ARENA_LOG_FORMAT"))
    except ValueError:
        # formato desconhecido: volta para deteccao automatica
        log_format = None
    return Config(
        input_dir=input_dir,
        output_dir=output_dir,
        database_url=database_url,
        max_workers=_int_env("ARENA_MAX_WORKERS", None),
        log_format=log_format,
        region=(os.getenv("WOW_REGION") or "eu").strip().lower(),
        wow_client_id=os.getenv("WOW_API_CLIENT_ID", "").strip(),
        wow_client_secret=os.getenv("WOW_API_CLIENT_SECRET", "").strip(),
        request_timeout=_int_env("WOW_API_TIMEOUT", DEFAULT_REQUEST_TIMEOUT) or DEFAULT_REQUEST_TIMEOUT,
        max_upload_bytes=_int_env("ARENA_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
        or DEFAULT_MAX_UPLOAD_BYTES,
    )
