"""Runtime configuration.

Effective values follow: overrides > environment > config file > defaults.
Environment variables are matched as RECFLOW_<KEY>.
"""
from __future__ import annotations

import dataclasses
import json
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from .errors import FileNotFound
from .protocol import DEFAULT_WRITE_ATTEMPTS

ENV_PREFIX = "RECFLOW_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class FlowConfig:
    verify_write: bool = False
    write_attempts: int = DEFAULT_WRITE_ATTEMPTS
    codec: str = "msgpack"

    def __post_init__(self):
        if self.write_attempts < 1:
            raise ValueError(f"write_attempts must be >= 1, got {self.write_attempts}")


def _parse_bool(key: str, raw) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Expected a boolean for {key}, got {raw!r}")


def _coerce(key: str, raw):
    if key == "verify_write":
        return _parse_bool(key, raw)
    if key == "write_attempts":
        return int(raw)
    return str(raw)


def load_config_file(path: str | Path | None) -> dict:
    """Read a flat TOML or JSON table. Unknown keys are ignored."""
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise FileNotFound(str(p))
    suffix = p.suffix.lower()
    if suffix in {".toml", ".tml"}:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    elif suffix == ".json":
        data = json.loads(p.read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Unsupported config format {p.suffix!r} (use TOML or JSON)")
    # allow the settings to live under a [recflow] table
    return dict(data.get("recflow", data))


def load_config(path: str | Path | None = None, environ=None, **overrides) -> FlowConfig:
    environ = os.environ if environ is None else environ
    file_values = load_config_file(path)
    values = {}
    for f in dataclasses.fields(FlowConfig):
        env_key = f"{ENV_PREFIX}{f.name.upper()}"
        if overrides.get(f.name) is not None:
            values[f.name] = _coerce(f.name, overrides[f.name])
        elif env_key in environ:
            values[f.name] = _coerce(f.name, environ[env_key])
        elif f.name in file_values:
            values[f.name] = _coerce(f.name, file_values[f.name])
    return FlowConfig(**values)


_default: FlowConfig | None = None


def default_config() -> FlowConfig:
    """Process-wide configuration from the environment, read once."""
    global _default
    if _default is None:
        _default = load_config()
    return _default


def set_default_config(config: FlowConfig | None) -> None:
    """Replace (or with None, reset) the process-wide configuration."""
    global _default
    _default = config
