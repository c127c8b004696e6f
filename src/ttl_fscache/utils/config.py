from __future__ import annotations

import dataclasses
import math
import os
import typing as t
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import ConfigurationError
from .duration import Duration, parse_duration

ErrorHandler = t.Callable[[BaseException], None]

# SHA-256 hex digest length; every cache file name has exactly this many chars.
HASH_LENGTH = 64


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@dataclass
class CacheConfig:
    base_path: t.Union[str, os.PathLike] = "./cache"
    ttl: Duration = "30d"
    max_ttl: Duration = "365d"
    allow_fractional_ttl: bool = False
    max_path_length: int = 260
    skip_initial_scan: bool = False
    error_handler: t.Optional[ErrorHandler] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "CacheConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"unknown cache options: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_env(cls, **overrides: t.Any) -> "CacheConfig":
        defaults = cls()
        values: t.Dict[str, t.Any] = {
            "base_path": os.environ.get("FSCACHE_BASE_PATH", defaults.base_path),
            "ttl": os.environ.get("FSCACHE_TTL", defaults.ttl),
            "max_ttl": os.environ.get("FSCACHE_MAX_TTL", defaults.max_ttl),
            "allow_fractional_ttl": _env_bool("FSCACHE_ALLOW_FRACTIONAL_TTL", defaults.allow_fractional_ttl),
            "max_path_length": _env_int("FSCACHE_MAX_PATH_LENGTH", defaults.max_path_length),
            "skip_initial_scan": _env_bool("FSCACHE_SKIP_INITIAL_SCAN", defaults.skip_initial_scan),
        }
        values.update(overrides)
        return cls.from_dict(values)

    def resolve_ttl(self) -> float:
        """Validate ``ttl`` against sign, granularity and ``max_ttl``; returns seconds."""
        ttl = parse_duration(self.ttl)
        max_ttl = parse_duration(self.max_ttl)
        if not math.isfinite(ttl) or ttl < 0:
            raise ConfigurationError(f"ttl must be a non-negative duration, got {self.ttl!r}")
        if not self.allow_fractional_ttl and not ttl.is_integer():
            raise ConfigurationError(
                f"ttl must be whole seconds, got {ttl!r}; set allow_fractional_ttl to permit it"
            )
        if ttl > max_ttl:
            raise ConfigurationError(f"ttl {self.ttl!r} exceeds the maximum of {self.max_ttl!r}")
        return ttl

    def resolve_base_path(self) -> str:
        """Absolute cache directory; relative paths resolve against the working directory."""
        path = Path(self.base_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        resolved = os.path.normpath(str(path))
        if len(resolved) + HASH_LENGTH + 1 > self.max_path_length:
            raise ConfigurationError(
                f"cache path is too long: {len(resolved)} chars plus a {HASH_LENGTH}-char file name "
                f"exceeds {self.max_path_length}"
            )
        return resolved
