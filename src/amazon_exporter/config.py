import os
from dataclasses import dataclass
from typing import Dict, Optional

from .logging import get_logger
from .paths import expand_abs, find_project_root, var_dir

log = get_logger("config")

DEFAULT_YNAB_SERVER = "https://api.ynab.com/v1"
DEFAULT_DB_FOLDER = "amazon_exporter"
DEFAULT_DB_FILENAME = "orders.sqlite3"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """KEY=value pairs from the nearest .env at or above dotenv_dir; os.environ is left alone."""
    env: Dict[str, str] = {}
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return env
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#") or line.startswith(";"):
                    continue
                if "=" not in line:
                    continue
                k, v = line.split("=", 1)
                k = k.strip()
                v = v.strip()
                if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
                    v = v[1:-1]
                env[k] = v.strip()
        log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    except OSError as e:
        log.warning(f"Failed reading .env: {e}")
    return env


def _lookup(key: str, env: Dict[str, str]) -> Optional[str]:
    value = os.environ.get(key)
    if value:
        return value.strip()
    value = env.get(key)
    return value.strip() if value else None


@dataclass
class YnabConfig:
    token: str
    server: str = DEFAULT_YNAB_SERVER


def load_ynab(dotenv_dir: str) -> Optional[YnabConfig]:
    """Return YNAB settings from env or .env, or None when no token is configured."""
    env = _read_dotenv(dotenv_dir)
    token = _lookup("YNAB_TOKEN", env)
    if not token:
        log.info("YNAB_TOKEN not found in env or .env; budgeting features disabled")
        return None
    server = _lookup("YNAB_SERVER", env) or DEFAULT_YNAB_SERVER
    return YnabConfig(token=token, server=server.rstrip("/"))


def load_db_path(dotenv_dir: str) -> str:
    """Return the SQLite path, defaulting to var/amazon_exporter/orders.sqlite3 at the project root."""
    env = _read_dotenv(dotenv_dir)
    configured = _lookup("AMAZON_EXPORTER_DB", env)
    if configured:
        return expand_abs(configured)
    root = find_project_root(dotenv_dir)
    return os.path.join(var_dir(root), DEFAULT_DB_FOLDER, DEFAULT_DB_FILENAME)
