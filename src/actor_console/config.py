import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "APIFY_API_KEY"
BASE_URL_KEY = "APIFY_API_BASE_URL"
CONNECT_TIMEOUT_KEY = "APIFY_CONNECT_TIMEOUT_SEC"
READ_TIMEOUT_KEY = "APIFY_READ_TIMEOUT_SEC"
POLL_INTERVAL_KEY = "RUN_POLL_INTERVAL_SEC"

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "apify-actor-console"
DEFAULT_BASE_URL = "https://api.apify.com/v2"
DEFAULT_CONNECT_TIMEOUT_SEC = 10.0
# run-sync endpoints hold the connection for up to 300s upstream
DEFAULT_READ_TIMEOUT_SEC = 330.0
DEFAULT_POLL_INTERVAL_SEC = 3.0


@dataclass
class Config:
    config_dir: Path
    env_path: Path
    base_url: str = DEFAULT_BASE_URL
    connect_timeout_sec: float = DEFAULT_CONNECT_TIMEOUT_SEC
    read_timeout_sec: float = DEFAULT_READ_TIMEOUT_SEC
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC


def load_env_file(path: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    if not path.exists():
        return data
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, v = line.split("=", 1)
            data[k.strip()] = v.strip()
    except OSError as exc:
        logger.warning("Failed to read %s: %s", path, exc)
    return data


def write_env_file(path: Path, data: Dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{k}={v}" for k, v in data.items()]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def get_env_value(key: str, env_file: Dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_file.get(key)


def get_env_path(config_dir: Path) -> Path:
    return config_dir / ".env"


def _float_setting(key: str, env_file: Dict[str, str], default: float) -> float:
    raw = (get_env_value(key, env_file) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", key, raw)
        return default
    return value if value > 0 else default


def _normalize_base_url(value: str) -> str:
    url = (value or "").strip().rstrip("/")
    return url or DEFAULT_BASE_URL


def load_config(config_dir: Optional[Path] = None) -> Config:
    directory = Path(config_dir or DEFAULT_CONFIG_DIR).expanduser()
    env_path = get_env_path(directory)
    env_file = load_env_file(env_path)
    return Config(
        config_dir=directory,
        env_path=env_path,
        base_url=_normalize_base_url(get_env_value(BASE_URL_KEY, env_file) or ""),
        connect_timeout_sec=_float_setting(CONNECT_TIMEOUT_KEY, env_file, DEFAULT_CONNECT_TIMEOUT_SEC),
        read_timeout_sec=_float_setting(READ_TIMEOUT_KEY, env_file, DEFAULT_READ_TIMEOUT_SEC),
        poll_interval_sec=_float_setting(POLL_INTERVAL_KEY, env_file, DEFAULT_POLL_INTERVAL_SEC),
    )
