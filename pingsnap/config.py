"""
Probe run configuration. Layers, lowest first: defaults, optional JSON file,
environment (IP, DATA_FOLDER, CHUNKSIZE, ITERATIONS, PING_DEADLINE, LOG_PATH),
command-line overrides. The result is an explicit ProbeConfig; nothing below
the CLI reads the environment.
"""
import json
import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger("pingsnap.config")

DEFAULT_DATA_FOLDER = "data"
DEFAULT_CHUNK_SIZE = 3
DEFAULT_ITERATIONS = 1
# Duration/size-bounded runs fill unset values from these.
DEFAULT_INTERVAL_S = 1.0
DEFAULT_PAYLOAD_SIZE = 56

ENV_INT = {"CHUNKSIZE": "chunk_size", "ITERATIONS": "iterations"}
ENV_FLOAT = {"PING_DEADLINE": "deadline"}
ENV_STR = {"IP": "target", "DATA_FOLDER": "data_folder", "LOG_PATH": "log_path"}


class ConfigError(ValueError):
    pass


def get_config_dir() -> Path:
    """User app data directory for logs."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
    else:
        base = os.path.expanduser("~")
    return Path(base) / "pingsnap"


@dataclass
class ProbeConfig:
    target: str = ""
    data_folder: str = DEFAULT_DATA_FOLDER
    chunk_size: int = DEFAULT_CHUNK_SIZE  # replies per sample in count-bounded mode
    iterations: int = DEFAULT_ITERATIONS
    interval: Optional[float] = None
    timeout: Optional[float] = None
    payload_size: Optional[int] = None
    deadline: Optional[float] = None  # seconds before the ping process is interrupted
    log_path: str = ""

    @property
    def timed_mode(self) -> bool:
        """True for duration/size-bounded runs (any of interval/timeout/payload_size set)."""
        return any(v is not None for v in (self.interval, self.timeout, self.payload_size))

    def ping_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ping.probe() for one sample."""
        if not self.timed_mode:
            return {"count": self.chunk_size, "deadline": self.deadline}
        interval = self.interval if self.interval is not None else DEFAULT_INTERVAL_S
        timeout = self.timeout if self.timeout is not None else self.chunk_size * interval
        payload_size = self.payload_size if self.payload_size is not None else DEFAULT_PAYLOAD_SIZE
        return {
            "interval": interval,
            "timeout": timeout,
            "payload_size": payload_size,
            "deadline": self.deadline,
        }

    def validate(self) -> "ProbeConfig":
        if not self.target.strip():
            raise ConfigError("no target address (set IP or pass --target)")
        if any(ord(ch) < 32 or ch == "\x7f" for ch in self.target):
            raise ConfigError(f"target contains control characters: {self.target!r}")
        if self.chunk_size < 1:
            raise ConfigError(f"chunk size must be at least 1, got {self.chunk_size}")
        if self.iterations < 1:
            raise ConfigError(f"iterations must be at least 1, got {self.iterations}")
        for name in ("interval", "timeout", "deadline"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")
        if self.payload_size is not None and self.payload_size < 0:
            raise ConfigError(f"payload size must be non-negative, got {self.payload_size}")
        return self


def get_default_config() -> dict[str, Any]:
    return {f.name: f.default for f in fields(ProbeConfig)}


def load_config_file(path: Optional[Path]) -> dict[str, Any]:
    """JSON config merged over defaults. Missing or unreadable files yield the defaults."""
    config = get_default_config()
    if path is None:
        return config
    path = Path(path)
    if not path.exists():
        logger.warning("Config file %s not found; using defaults", path)
        return config
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not read config file %s: %s", path, e)
        return config
    if not isinstance(data, dict):
        logger.warning("Config file %s does not hold an object; ignoring it", path)
        return config
    for k, v in data.items():
        if k in config:
            config[k] = v
        else:
            logger.warning("Unknown config key %r in %s", k, path)
    return config


def _env_number(environ: Mapping[str, str], name: str, cast, current):
    raw = environ.get(name, "").strip()
    if not raw:
        return current
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid number", name, raw)
        return current


def apply_environment(config: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    for env, key in ENV_STR.items():
        value = environ.get(env, "").strip()
        if value:
            config[key] = value
    for env, key in ENV_INT.items():
        config[key] = _env_number(environ, env, int, config[key])
    for env, key in ENV_FLOAT.items():
        config[key] = _env_number(environ, env, float, config[key])
    return config


def dict_to_config(d: Mapping[str, Any]) -> ProbeConfig:
    try:
        return ProbeConfig(
            target=str(d.get("target") or "").strip(),
            data_folder=str(d.get("data_folder") or DEFAULT_DATA_FOLDER),
            chunk_size=int(d.get("chunk_size", DEFAULT_CHUNK_SIZE)),
            iterations=int(d.get("iterations", DEFAULT_ITERATIONS)),
            interval=_optional(float, d.get("interval")),
            timeout=_optional(float, d.get("timeout")),
            payload_size=_optional(int, d.get("payload_size")),
            deadline=_optional(float, d.get("deadline")),
            log_path=str(d.get("log_path") or ""),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid configuration value: {e}") from e


def _optional(cast, value):
    return None if value is None else cast(value)


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ProbeConfig:
    """Build and validate the run configuration; raises ConfigError."""
    config = load_config_file(path)
    apply_environment(config, os.environ if environ is None else environ)
    for k, v in (overrides or {}).items():
        if v is not None:
            config[k] = v
    return dict_to_config(config).validate()
