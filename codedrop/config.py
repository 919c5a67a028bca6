"""
Environment configuration for codedrop.
Values are read from the process environment (and a local .env file).
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class InvalidConfig(Exception):
    """Raised when an environment value cannot be used."""


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidConfig(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise InvalidConfig(f"{name} must be >= {minimum}, got {value}")
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    code_length: int = 6
    ttl_seconds: int = 5 * 60
    max_text_length: int = 50_000
    max_attempts: int = 5
    cooldown_seconds: int = 30
    stale_identity_seconds: int = 120
    max_files: int = 10
    max_payload_bytes: int = 25 * 1024 * 1024
    sweep_interval_seconds: int = 60
    database_path: str = "data/drops.db"
    debug: bool = False
    production_domain: str = "localhost"
    rate_limit_enabled: bool = True


def get_settings() -> Settings:
    """Build settings from the current environment."""
    code_length = _int_env("CODE_LENGTH", 6, minimum=4)
    if code_length > 12:
        raise InvalidConfig(f"CODE_LENGTH must be <= 12, got {code_length}")

    return Settings(
        code_length=code_length,
        ttl_seconds=_int_env("EXPIRY_MINUTES", 5) * 60,
        max_text_length=_int_env("MAX_TEXT_LENGTH", 50_000),
        max_attempts=_int_env("MAX_ATTEMPTS", 5),
        cooldown_seconds=_int_env("COOLDOWN_SECONDS", 30),
        stale_identity_seconds=_int_env("STALE_IDENTITY_SECONDS", 120),
        max_files=_int_env("MAX_FILES", 10),
        max_payload_bytes=_int_env("MAX_PAYLOAD_BYTES", 25 * 1024 * 1024),
        sweep_interval_seconds=_int_env("SWEEP_INTERVAL_SECONDS", 60),
        database_path=os.getenv("DATABASE_PATH", "data/drops.db"),
        debug=_bool_env("DEBUG", False),
        production_domain=os.getenv("PRODUCTION_DOMAIN", "localhost"),
        rate_limit_enabled=_bool_env("RATE_LIMIT_ENABLED", True),
    )
