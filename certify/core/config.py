from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEV_JWT_SECRET = "dev-only-secret"


def _getenv(name: str, default: str) -> str:
    # Single entry point for env access; values are always stripped
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    jwt_secret: str
    certificate_prefix: str
    certificate_base_url: str
    organization_name: str
    organization_slug: str
    certificate_language: str
    number_max_attempts: int
    issuance_guard_ttl_seconds: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", 8000, minimum=1)
    log_json = _getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

    jwt_secret = _getenv("JWT_SECRET", "")
    if not jwt_secret:
        if app_env_raw == "prod":
            raise ValueError("JWT_SECRET must be set when APP_ENV=prod")
        jwt_secret = _DEV_JWT_SECRET

    prefix = _getenv("CERTIFICATE_PREFIX", "MUNI").upper()
    if not prefix.isalnum():
        raise ValueError(f"CERTIFICATE_PREFIX must be alphanumeric (got {prefix!r})")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        jwt_secret=jwt_secret,
        certificate_prefix=prefix,
        certificate_base_url=_getenv(
            "CERTIFICATE_BASE_URL", "https://certificates.myunilab.net"
        ).rstrip("/"),
        organization_name=_getenv("ORGANIZATION_NAME", "MyUNI Eğitim Platformu"),
        organization_slug=_getenv("ORGANIZATION_SLUG", "myuni"),
        certificate_language=_getenv("CERTIFICATE_LANGUAGE", "tr"),
        number_max_attempts=_getenv_int("NUMBER_MAX_ATTEMPTS", 10, minimum=1),
        issuance_guard_ttl_seconds=_getenv_int(
            "ISSUANCE_GUARD_TTL_SECONDS", 3600, minimum=1
        ),
    )


# Module-level singleton for the entry points (main, alembic)
SETTINGS = load_settings()
