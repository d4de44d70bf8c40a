"""
Layered configuration store for the service.

Values are resolved in this order, first hit wins:

* explicit overrides (e.g. ``--shared.version=1.0`` on the command line),
* environment variables (``shared.version`` is looked up as ``SHARED_VERSION``),
* properties files (``key = value`` lines), including ``$CIA_CONFIG_FILE``,
* built-in defaults.
"""
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from cia.constants import LOG_LEVEL, SERVER_HOST, SERVER_PORT, SHARED_VERSION, VERSION

CONFIG_FILE_ENV = "CIA_CONFIG_FILE"

DEFAULTS: Mapping[str, str] = {
    SHARED_VERSION: VERSION,
    SERVER_HOST: "0.0.0.0",
    SERVER_PORT: "8000",
    LOG_LEVEL: "INFO",
}

_ARG_PATTERN = re.compile(r"^--([A-Za-z][\w.\-]*)=(.*)$")


class ConfigurationError(RuntimeError):
    """Raised when configuration cannot be loaded or a required key is missing."""


def env_name(key: str) -> str:
    return re.sub(r"[.\-]", "_", key).upper()


def read_properties(path: Path) -> Dict[str, str]:
    """Parse a Java-style properties file; blank lines and #/! comments are skipped."""
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    values: Dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped[0] in "#!":
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            key, sep, value = stripped.partition(":")
        if not sep:
            raise ConfigurationError(f"Malformed line in {path}: {line!r}")
        values[key.strip()] = value.strip()
    return values


class Configuration:
    """Read-only view over overrides, environment, properties files and defaults."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        files: Iterable[Path] = (),
        defaults: Mapping[str, str] = DEFAULTS,
    ):
        self._overrides = dict(overrides or {})
        self._environ = environ if environ is not None else os.environ
        self._defaults = dict(defaults)
        self._files: List[Path] = [Path(path) for path in files]
        extra = self._environ.get(CONFIG_FILE_ENV)
        if extra:
            self._files.append(Path(extra))
        self._file_values: Dict[str, str] = {}
        # Later files win over earlier ones.
        for path in self._files:
            self._file_values.update(read_properties(path))

    @classmethod
    def from_args(
        cls, args: Sequence[str], environ: Optional[Mapping[str, str]] = None
    ) -> Tuple["Configuration", List[str]]:
        """Split ``--key=value`` arguments into overrides; return the rest untouched."""
        overrides: Dict[str, str] = {}
        remaining: List[str] = []
        for arg in args:
            match = _ARG_PATTERN.match(arg)
            if match and "." in match.group(1):
                overrides[match.group(1)] = match.group(2)
            else:
                remaining.append(arg)
        return cls(overrides=overrides, environ=environ), remaining

    def with_overrides(self, overrides: Mapping[str, str]) -> "Configuration":
        merged = {**self._overrides, **overrides}
        clone = Configuration.__new__(Configuration)
        clone._overrides = merged
        clone._environ = self._environ
        clone._defaults = self._defaults
        clone._files = list(self._files)
        clone._file_values = dict(self._file_values)
        return clone

    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if key in self._overrides:
            return self._overrides[key]
        env_value = self._environ.get(env_name(key))
        if env_value is not None:
            return env_value
        if key in self._file_values:
            return self._file_values[key]
        return self._defaults.get(key, default)

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        raw = self.get_string(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigurationError(f"Configuration key {key!r} is not an integer: {raw!r}") from exc

    def require(self, key: str) -> str:
        value = self.get_string(key)
        if value is None:
            raise ConfigurationError(f"Missing required configuration key {key!r}")
        return value

    def __contains__(self, key: str) -> bool:
        return self.get_string(key) is not None
