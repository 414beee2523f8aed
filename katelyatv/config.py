# katelyatv/config.py
import os
from typing import Tuple
from dotenv import load_dotenv

load_dotenv()

DEFAULT_OWNER_USERNAME = "admin"
DEFAULT_STORAGE_TYPE = "redis"
STORAGE_TYPES = ("redis", "kvrocks")

# env prefix per backend: KVROCKS_URL / KVROCKS_TOKEN, REDIS_URL / REDIS_TOKEN
BACKEND_ENV_PREFIX = {
    "kvrocks": "KVROCKS",
    "redis": "REDIS",
}


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid."""


def backend_credentials(storage_type: str) -> Tuple[str, str]:
    """
    Endpoint URL and access token for a backend.
    Both are required; raises ConfigurationError before any connection is made.
    """
    prefix = BACKEND_ENV_PREFIX.get(storage_type)
    if prefix is None:
        raise ConfigurationError(f"Unknown storage type: {storage_type!r}")

    url = os.getenv(f"{prefix}_URL")
    token = os.getenv(f"{prefix}_TOKEN")
    if not url or not token:
        raise ConfigurationError(f"{prefix}_URL and {prefix}_TOKEN must be configured")
    return url, token


def storage_type() -> str:
    value = (os.getenv("STORAGE_TYPE") or DEFAULT_STORAGE_TYPE).strip().lower()
    if value not in STORAGE_TYPES:
        raise ConfigurationError(
            f"STORAGE_TYPE must be one of {', '.join(STORAGE_TYPES)}, got {value!r}"
        )
    return value


def owner_username() -> str:
    return os.getenv("USERNAME") or DEFAULT_OWNER_USERNAME


def owner_password() -> str:
    """Owner login password; empty means the owner cannot log in."""
    return os.getenv("PASSWORD", "")


def secret_key() -> str:
    return os.getenv("SECRET_KEY", "your-secret-key")


def access_token_expire_minutes() -> int:
    return int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "WARNING")
