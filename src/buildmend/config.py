"""Configuration models for buildmend runs."""

import os

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .errors import ConfigError, RequirementUnsatisfiable

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def coerce_bool(raw: Any) -> Optional[bool]:
    """Coerce a flag value to bool, ``None`` when it is not a recognisable boolean."""
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return None
    v = str(raw).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    return None


@dataclass(frozen=True)
class FeatureFlags:
    """Immutable set of externally supplied flags for one reconciliation run.

    Values are kept as the raw strings the CI platform exported; typed
    access goes through the ``get_*`` helpers.
    """
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {str(k): str(v) for k, v in dict(self.values).items() if v is not None}
        object.__setattr__(self, "values", MappingProxyType(cleaned))

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        env_file: Optional[Path] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "FeatureFlags":
        """Build flags from the process environment.

        Precedence: ``overrides`` > environment > ``env_file``.
        """
        merged: dict[str, str] = {}
        if env_file is not None and Path(env_file).is_file():
            merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        merged.update(os.environ if env is None else env)
        if overrides:
            merged.update(overrides)
        return cls(merged)

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def is_set(self, name: str) -> bool:
        """True when the flag exists and is not blank."""
        return bool(self.values.get(name, "").strip())

    def get_str(self, name: str, default: Optional[str] = None) -> Optional[str]:
        raw = self.values.get(name)
        if raw is None or not raw.strip():
            return default
        return raw.strip()

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = coerce_bool(self.values.get(name))
        return default if value is None else value

    def get_int(self, name: str, default: Optional[int] = None) -> Optional[int]:
        raw = self.get_str(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            return default

    def get_float(self, name: str, default: Optional[float] = None) -> Optional[float]:
        raw = self.get_str(name)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError:
            return default

    def require(self, name: str) -> str:
        value = self.get_str(name)
        if value is None:
            raise RequirementUnsatisfiable(name)
        return value

    def check_types(self, declared: Mapping[str, str]) -> list[str]:
        """Return problems for flags whose value does not coerce to the declared type."""
        issues: list[str] = []
        for name, kind in declared.items():
            raw = self.get_str(name)
            if raw is None:
                continue
            if kind == "bool" and coerce_bool(raw) is None:
                issues.append(f"{name}={raw!r} is not a boolean")
            elif kind == "int" and self.get_int(name) is None:
                issues.append(f"{name}={raw!r} is not an integer")
            elif kind == "float" and self.get_float(name) is None:
                issues.append(f"{name}={raw!r} is not a number")
        return issues


@dataclass
class NetworkConfig:
    """Settings for downloading remote inputs (logo, Firebase configs).

    ``max_backoff_wait`` caps the sleep between retries and must be positive;
    use ``backoff_factor: 0`` to retry without waiting.
    """
    timeout: float = 30.0
    attempts: int = 3
    backoff_factor: float = 1.0
    max_backoff_wait: float = 30.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for settings the retry transport cannot use."""
        if self.timeout <= 0:
            raise ConfigError(f"network.timeout must be positive, got {self.timeout}")
        if self.attempts < 1:
            raise ConfigError(f"network.attempts must be at least 1, got {self.attempts}")
        if self.backoff_factor < 0:
            raise ConfigError(f"network.backoff_factor must not be negative, got {self.backoff_factor}")
        if self.max_backoff_wait <= 0:
            raise ConfigError(f"network.max_backoff_wait must be positive, got {self.max_backoff_wait}")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "NetworkConfig":
        data = data or {}
        return cls(
            timeout=float(data.get("timeout", 30.0)),
            attempts=max(1, int(data.get("attempts", 3))),
            backoff_factor=float(data.get("backoff_factor", 1.0)),
            max_backoff_wait=float(data.get("max_backoff_wait", 30.0)),
        )

    def with_env(self, env: Optional[Mapping[str, str]] = None) -> "NetworkConfig":
        src = os.environ if env is None else env

        def clean(key: str) -> Optional[str]:
            value = src.get(key)
            if value is None:
                return None
            v = str(value).strip()
            return v or None

        timeout = clean("BUILDMEND_HTTP_TIMEOUT")
        attempts = clean("BUILDMEND_HTTP_ATTEMPTS")
        backoff = clean("BUILDMEND_HTTP_BACKOFF")
        max_wait = clean("BUILDMEND_HTTP_MAX_WAIT")
        return NetworkConfig(
            timeout=float(timeout) if timeout else self.timeout,
            attempts=max(1, int(attempts)) if attempts else self.attempts,
            backoff_factor=float(backoff) if backoff else self.backoff_factor,
            max_backoff_wait=float(max_wait) if max_wait else self.max_backoff_wait,
        )


@dataclass
class EngineConfig:
    """Configuration for a reconciliation run over one Flutter project."""
    project_root: Path = field(default_factory=lambda: Path("."))
    platforms: list[str] = field(default_factory=lambda: ["ios", "android"])
    catalog: Optional[Path] = None
    report: Optional[Path] = None
    cache_dir: Path = field(default_factory=lambda: Path(".buildmend/cache"))
    env_file: Optional[Path] = None
    network: NetworkConfig = field(default_factory=NetworkConfig)
    policy: dict[str, str] = field(default_factory=dict)
    lint: bool = True

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """Load engine configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data, base_path=path.parent)

    @classmethod
    def from_dict(cls, data: dict, base_path: Optional[Path] = None) -> "EngineConfig":
        """Create configuration from dictionary; relative paths resolve against ``base_path``."""
        base = base_path or Path(".")

        def rel(value: Optional[str]) -> Optional[Path]:
            if value is None:
                return None
            p = Path(value)
            return p if p.is_absolute() else base / p

        project_root = rel(data.get("project_root", ".")) or base
        platforms = data.get("platforms", ["ios", "android"])
        if isinstance(platforms, str):
            platforms = [platforms]

        cache_dir = Path(data.get("cache_dir", ".buildmend/cache"))
        if not cache_dir.is_absolute():
            cache_dir = project_root / cache_dir

        return cls(
            project_root=project_root,
            platforms=[str(p).lower() for p in platforms],
            catalog=rel(data.get("catalog")),
            report=rel(data.get("report")),
            cache_dir=cache_dir,
            env_file=rel(data.get("env_file")),
            network=NetworkConfig.from_dict(data.get("network")),
            policy={str(k): str(v).lower() for k, v in (data.get("policy") or {}).items()},
            lint=bool(data.get("lint", True)),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "project_root": str(self.project_root),
            "platforms": list(self.platforms),
            "catalog": str(self.catalog) if self.catalog else None,
            "report": str(self.report) if self.report else None,
            "cache_dir": str(self.cache_dir),
            "env_file": str(self.env_file) if self.env_file else None,
            "network": {
                "timeout": self.network.timeout,
                "attempts": self.network.attempts,
                "backoff_factor": self.network.backoff_factor,
                "max_backoff_wait": self.network.max_backoff_wait,
            },
            "policy": dict(self.policy),
            "lint": self.lint,
        }

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config(path: str | Path) -> EngineConfig:
    """Load engine configuration from file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return EngineConfig.from_yaml(path)
