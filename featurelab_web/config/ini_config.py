import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path

INI_DEFAULT_NAME = "featurelab.ini"

DEFAULT_BASE_URL = "https://be-zaassistant.vercel.app/api"
STORAGE_BACKENDS = ("file", "memory", "sqlserver")


@dataclass(frozen=True)
class AppSettings:
    api_base_url: str
    timeout_seconds: int
    max_retries: int
    retry_delay_seconds: float

    analysis_context: str
    ui_context: str
    auto_generate_window_seconds: float

    storage_backend: str
    storage_dir: Path
    history_max_entries: int
    session_ttl_hours: int
    sqlserver_table: str

    log_level: str

    flask_host: str
    flask_port: int
    flask_debug: bool


class IniConfig:
    """
    Adapter around ConfigParser and filesystem resolution.
    Keeps INI handling out of your app/service code.
    """

    def __init__(self, ini_path: Path):
        self._ini_path = Path(ini_path)
        self._cfg = ConfigParser()
        read_ok = self._cfg.read(str(ini_path), encoding="utf-8-sig")
        if not read_ok:
            raise FileNotFoundError(f"INI file not found or unreadable: {ini_path}")

    @property
    def ini_path(self) -> Path:
        return self._ini_path

    @staticmethod
    def from_env_or_default() -> "IniConfig":
        ini_raw = (os.getenv("APP_INI") or "").strip()
        # If APP_INI is not set, default to repo-root-relative ini location
        ini_path = Path(ini_raw) if ini_raw else (Path(__file__).resolve().parents[2] / INI_DEFAULT_NAME)
        return IniConfig(ini_path)

    def _cfg_path(self, section: str, key: str, default: str) -> Path:
        """
        Reads a filesystem path from INI.
        Relative paths resolve against the INI file's directory.
        """
        raw = (self._cfg.get(section, key, fallback=default) or "").strip() or default
        raw = os.path.expandvars(os.path.expanduser(raw))
        p = Path(raw)
        if not p.is_absolute():
            p = self._ini_path.resolve().parent / p
        return p.resolve()

    def _cfg_str(self, section: str, key: str, default: str) -> str:
        return (self._cfg.get(section, key, fallback=default) or "").strip() or default

    def load_settings(self) -> AppSettings:
        # Inference service
        api_base_url = self._cfg_str("api", "base_url", DEFAULT_BASE_URL).rstrip("/")
        timeout_seconds = self._cfg.getint("api", "timeout_seconds", fallback=120)
        max_retries = self._cfg.getint("api", "max_retries", fallback=5)
        retry_delay_ms = self._cfg.getint("api", "retry_delay_ms", fallback=1000)

        # Pipeline
        analysis_context = self._cfg_str("pipeline", "analysis_context", "Product improvement")
        ui_context = self._cfg_str("pipeline", "ui_context", "UI generation from user input")
        auto_generate_window_ms = self._cfg.getint("pipeline", "auto_generate_window_ms", fallback=500)

        # Storage
        storage_backend = self._cfg_str("storage", "backend", "file").lower()
        storage_dir = self._cfg_path("storage", "directory", ".featurelab_state")
        history_max_entries = self._cfg.getint("storage", "history_max_entries", fallback=100)
        session_ttl_hours = self._cfg.getint("storage", "session_ttl_hours", fallback=24)
        sqlserver_table = self._cfg_str("sqlserver", "table_name", "dbo.FeatureLabState")

        log_level = self._cfg_str("logging", "level", "INFO").upper()

        # Flask
        flask_host = (self._cfg.get("flask", "host", fallback="127.0.0.1") or "").strip() or "127.0.0.1"
        flask_port = self._cfg.getint("flask", "port", fallback=5000)
        flask_debug = self._cfg.getboolean("flask", "debug", fallback=True)

        # Validate
        if max_retries < 0:
            raise ValueError(f"api.max_retries must be >= 0, got {max_retries}")
        if retry_delay_ms < 0:
            raise ValueError(f"api.retry_delay_ms must be >= 0, got {retry_delay_ms}")
        if storage_backend not in STORAGE_BACKENDS:
            raise ValueError(f"storage.backend must be one of {', '.join(STORAGE_BACKENDS)}, got {storage_backend!r}")
        if history_max_entries < 1:
            raise ValueError("storage.history_max_entries must be >= 1")

        return AppSettings(
            api_base_url=api_base_url,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_ms / 1000.0,
            analysis_context=analysis_context,
            ui_context=ui_context,
            auto_generate_window_seconds=auto_generate_window_ms / 1000.0,
            storage_backend=storage_backend,
            storage_dir=storage_dir,
            history_max_entries=history_max_entries,
            session_ttl_hours=session_ttl_hours,
            sqlserver_table=sqlserver_table,
            log_level=log_level,
            flask_host=flask_host,
            flask_port=flask_port,
            flask_debug=flask_debug,
        )
