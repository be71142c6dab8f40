"""
Runtime configuration.

Values come from the process environment, optionally seeded from a .env file
(working directory first, then ~/.parity/.env). CLI flags override both.

    PARITY_PROD_BASE_URL   production origin used to fetch relative URLs
    PARITY_ARTIFACTS_DIR   where inventories are read and reports written
    PARITY_USER_AGENT      client signature sent with extraction requests
    PARITY_FETCH_TIMEOUT   per-request timeout in seconds
    PARITY_FETCH_WORKERS   max in-flight extraction requests
    PARITY_FETCH_DELAY     min seconds between request starts (across workers)
"""

import os
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_PROD_BASE_URL = "https://www.karasuemlak.net"
DEFAULT_ARTIFACTS_DIR = "reports/parity"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ParityAuditor/1.0)"
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_FETCH_WORKERS = 4
DEFAULT_FETCH_DELAY = 0.5

PROD_INVENTORY_NAME = "prod-urls.json"
LOCAL_INVENTORY_NAME = "local-urls.json"
DIFF_JSON_NAME = "diff-report.json"
DIFF_MD_NAME = "diff-report.md"
FIX_JSON_NAME = "fix-report.json"
FIX_MD_NAME = "fix-report.md"
REDIRECT_MAP_NAME = "redirect-map.json"
IMPORT_BUNDLE_NAME = "content-import.json"
CHECKPOINT_NAME = "fix-checkpoint.jsonl"
HISTORY_DIR_NAME = "history"


def load_env():
    """Load environment variables from .env file. Returns the path used, or None."""
    env_paths = [
        Path.cwd() / ".env",
        Path.home() / ".parity" / ".env",
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        print(f"WARNING: {name}={value!r} is not a number, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        print(f"WARNING: {name}={value!r} is not an integer, using {default}")
        return default


def get_settings() -> dict:
    """Resolve settings from the environment (call load_env() first)."""
    return {
        "prod_base_url": os.getenv("PARITY_PROD_BASE_URL", DEFAULT_PROD_BASE_URL).rstrip("/"),
        "artifacts_dir": Path(os.getenv("PARITY_ARTIFACTS_DIR", DEFAULT_ARTIFACTS_DIR)),
        "user_agent": os.getenv("PARITY_USER_AGENT", DEFAULT_USER_AGENT),
        "fetch_timeout": _env_float("PARITY_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT),
        "fetch_workers": max(1, _env_int("PARITY_FETCH_WORKERS", DEFAULT_FETCH_WORKERS)),
        "fetch_delay": max(0.0, _env_float("PARITY_FETCH_DELAY", DEFAULT_FETCH_DELAY)),
    }
