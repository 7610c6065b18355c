import os
from typing import Any, Dict

import yaml

ROOT_DIR = os.path.dirname(__file__)


def _load_dotenv(path: str, existing_env: set[str], allow_override: bool = False) -> None:
    if not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[7:].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                if not key:
                    continue
                current_value = str(os.environ.get(key, "") or "").strip()
                # Empty pre-existing env vars are not authoritative.
                if key in existing_env and current_value:
                    continue
                if key in os.environ and (not allow_override) and current_value:
                    continue
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
                    value = value[1:-1]
                os.environ[key] = value
    except OSError:
        return


_EXISTING_ENV = set(os.environ.keys())
_load_dotenv(os.path.join(ROOT_DIR, ".env"), _EXISTING_ENV, allow_override=False)
_load_dotenv(os.path.join(ROOT_DIR, ".env.local"), _EXISTING_ENV, allow_override=True)

APP_ENV = os.getenv("APP_ENV", "dev")
CONFIG_PATH = os.getenv("CONFIG_PATH", os.path.join(ROOT_DIR, "config.yaml"))

_ENV_ONLY_KEYS = {
    "GITHUB_TOKEN",
    "OPENAI_API_KEY",
    "CLAUDE_API_KEY",
    "ANTHROPIC_API_KEY",
    "DEEPSEEK_API_KEY",
    "MINIMAX_API_KEY",
}


def _load_config(path: str, env: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw_data: Any = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError):
        return {}
    data = raw_data or {}
    if isinstance(data, dict) and env in data and isinstance(data[env], dict):
        return dict(data[env])
    if isinstance(data, dict):
        return dict(data)
    return {}


_CONFIG = _load_config(CONFIG_PATH, APP_ENV)


def _get(name: str, default: Any) -> Any:
    if name in os.environ:
        return os.environ[name]
    if name in _ENV_ONLY_KEYS:
        return default
    if isinstance(_CONFIG, dict):
        if name in _CONFIG:
            return _CONFIG[name]
        lower = name.lower()
        if lower in _CONFIG:
            return _CONFIG[lower]
    return default


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes"}


def get_setting(name: str, default: Any = "") -> Any:
    """Look up a setting that has no module-level constant (provider overrides)."""
    return _get(name, default)


API_HOST = _get("API_HOST", "127.0.0.1")
API_PORT = int(_get("API_PORT", "8020"))
APP_VERSION = str(_get("APP_VERSION", "0.3.0"))
LOG_JSON = _parse_bool(_get("LOG_JSON", "true"), True)
LOG_LEVEL = str(_get("LOG_LEVEL", "INFO")).strip().upper() or "INFO"

GITHUB_API_BASE_URL = str(_get("GITHUB_API_BASE_URL", "https://api.github.com")).strip().rstrip("/")
GITHUB_TOKEN = str(_get("GITHUB_TOKEN", "")).strip()
GITHUB_TIMEOUT_SECONDS = max(1, int(_get("GITHUB_TIMEOUT_SECONDS", "12")))
SEARCH_MIN_STARS = max(0, int(_get("SEARCH_MIN_STARS", "1")))
SEARCH_PER_QUERY_LIMIT = max(1, min(int(_get("SEARCH_PER_QUERY_LIMIT", "20")), 100))
SEARCH_MAX_QUERIES = max(1, int(_get("SEARCH_MAX_QUERIES", "3")))

LLM_TEMPERATURE = float(_get("LLM_TEMPERATURE", "0.2"))
LLM_TIMEOUT_SECONDS = max(1, int(_get("LLM_TIMEOUT_SECONDS", "30")))
ANALYSIS_LLM_MAX_TOKENS = int(_get("ANALYSIS_LLM_MAX_TOKENS", "2048"))
ANALYSIS_MAX_INPUT_CHARS = int(_get("ANALYSIS_MAX_INPUT_CHARS", "60000"))
COVERAGE_LLM_MAX_TOKENS = int(_get("COVERAGE_LLM_MAX_TOKENS", "1024"))
DETAIL_LLM_MAX_TOKENS = int(_get("DETAIL_LLM_MAX_TOKENS", "2048"))

COVERAGE_CALL_TIMEOUT_SECONDS = max(1.0, float(_get("COVERAGE_CALL_TIMEOUT_SECONDS", "30")))
COVERAGE_CANDIDATE_LIMIT = max(1, int(_get("COVERAGE_CANDIDATE_LIMIT", "10")))
COVERAGE_TOP_K = max(1, int(_get("COVERAGE_TOP_K", "10")))
COVERAGE_MAX_CONCURRENCY = max(1, int(_get("COVERAGE_MAX_CONCURRENCY", "10")))

DETAIL_README_MAX_CHARS = max(1, int(_get("DETAIL_README_MAX_CHARS", "3000")))
DETAIL_CONTRIBUTORS_CAP = max(1, min(int(_get("DETAIL_CONTRIBUTORS_CAP", "100")), 100))
DETAIL_CALL_TIMEOUT_SECONDS = max(1.0, float(_get("DETAIL_CALL_TIMEOUT_SECONDS", "45")))

UPLOAD_MAX_BYTES = int(_get("UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))

CORS_ORIGINS = [
    origin.strip()
    for origin in str(
        _get(
            "CORS_ORIGINS",
            "http://127.0.0.1:3000,http://localhost:3000",
        )
    ).split(",")
    if origin.strip()
]
