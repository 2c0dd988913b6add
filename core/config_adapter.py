""" Configuration sources layered behind a single lookup. """

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Protocol


class ConfigSource(Protocol):
    """A backing store that may know the value for a config key."""

    def get(self, key: str) -> str | None: ...


@dataclass(slots=True)
class EnvConfigSource:
    """Reads values from the process environment, optionally namespaced."""

    prefix: str | None = None

    def get(self, key: str) -> str | None:
        env_key = f"{self.prefix}{key}" if self.prefix else key
        return os.getenv(env_key)


@dataclass(slots=True)
class DotEnvConfigSource:
    """Reads KEY=VALUE lines from a .env file on first access.

    Blank lines, comments and lines without '=' are skipped; an optional
    leading ``export`` is tolerated so shell-style files work unchanged.
    """

    path: Path = Path(".env")
    encoding: str = "utf-8"
    _cache: dict[str, str] = field(default_factory=dict, init=False)
    _loaded: bool = field(default=False, init=False)

    def _load(self) -> None:
        if self._loaded:
            return
        try:
            text = self.path.read_text(encoding=self.encoding)
        except FileNotFoundError:
            text = ""
        finally:
            self._loaded = True
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export ") :]
            key, value = line.split("=", 1)
            self._cache[key.strip()] = self._unquote(value.strip())

    @staticmethod
    def _unquote(value: str) -> str:
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            return value[1:-1]
        return value

    def values(self) -> dict[str, str]:
        self._load()
        return dict(self._cache)

    def get(self, key: str) -> str | None:
        self._load()
        return self._cache.get(key)


@dataclass(slots=True)
class ConfigAdapter:
    """First source that knows a key wins (env → .env)."""

    sources: tuple[ConfigSource, ...]

    def get(self, key: str, default: str | None = None) -> str | None:
        for source in self.sources:
            value = source.get(key)
            if value is not None:
                return value
        return default
