"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, get_type_hints


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t", redis_url="redis://cache:6379/0")
    """

    # Development mode: route table rebuilt on every start, never persisted
    debug: bool = False

    # Security
    secret_key: str = ""

    # Cache key namespace: "{server_prefix}:{app_env}:"
    server_prefix: str = "perch"
    app_env: str = "prod"

    # Route middleware
    api_prefix: str = "/api/"
    access_denied_url: str = "/"
    login_url: str = "/login"
    api_hosts: tuple[str, ...] = ("127.0.0.1",)

    # Caching
    cache_enabled: bool = True
    cache_backend: str = "auto"  # auto | redis | memory | local
    redis_url: str | None = None
    local_cache_size: int = 1024

    # Router
    resolution_cache_size: int = 1024

    @property
    def cache_prefix(self) -> str:
        """Prefix applied to every cache key written by the adapters."""
        return f"{self.server_prefix}:{self.app_env}:"

    @classmethod
    def from_env(cls, prefix: str = "PERCH_", **overrides: Any) -> AppConfig:
        """Build a config from environment variables.

        Each field maps to ``{prefix}{FIELD_NAME}``, e.g. ``PERCH_REDIS_URL``.
        Booleans accept ``1/true/yes/on``; tuples are comma-separated.
        Explicit keyword *overrides* win over the environment.
        """
        hints = get_type_hints(cls)
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            values[f.name] = _parse_env_value(raw, hints[f.name])
        values.update(overrides)
        return cls(**values)


def _parse_env_value(raw: str, annotation: Any) -> Any:
    if annotation is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if annotation is int:
        return int(raw)
    if annotation == tuple[str, ...]:
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    if annotation == str | None:
        return raw or None
    return raw
