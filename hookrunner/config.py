"""Configuration loader - reads config/settings.yaml; command-line flags override it."""
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict

CONFIG_DIR = "config"
SETTINGS_FILE = "settings.yaml"


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class PathsConfig(BaseModel):
    hooks: str = "hooks"
    logs: str = "logs"


class PluginsConfig(BaseModel):
    health: bool = True
    history: bool = True
    history_limit: int = 1000


class LoggingConfig(BaseModel):
    level: str = "info"


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")
    server: ServerConfig = ServerConfig()
    paths: PathsConfig = PathsConfig()
    plugins: PluginsConfig = PluginsConfig()
    logging: LoggingConfig = LoggingConfig()

    @property
    def hooks_path(self) -> Path:
        return Path(self.paths.hooks).expanduser().resolve()

    @property
    def logs_path(self) -> Path:
        return Path(self.paths.logs).expanduser().resolve()


def settings_path(project_root: Path | None = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_DIR / SETTINGS_FILE


def read_settings_file(path: Path) -> dict:
    """Raw settings mapping; empty when the file does not exist."""
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def write_settings_file(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _merge(base: dict, overrides: dict) -> dict:
    out = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(
    project_root: Path | None = None,
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from YAML, then apply nested overrides (None values skipped)."""
    path = config_path or settings_path(project_root)
    data = read_settings_file(Path(path))
    if overrides:
        data = _merge(data, _drop_none(overrides))
    return Settings(**data)


def _drop_none(d: dict) -> dict:
    out = {}
    for key, value in d.items():
        if isinstance(value, dict):
            value = _drop_none(value)
            if value:
                out[key] = value
        elif value is not None:
            out[key] = value
    return out


def get_value(data: dict, key: str) -> Any:
    """Look up a dotted key; "" when absent."""
    v: Any = data
    for k in key.split("."):
        if isinstance(v, dict):
            v = v.get(k, "")
        else:
            return ""
    return v


def set_value(data: dict, key: str, value: str) -> dict:
    """Set a dotted key, coercing ints/floats/booleans."""
    keys = key.split(".")
    d = data
    for k in keys[:-1]:
        d = d.setdefault(k, {})
    d[keys[-1]] = coerce(value)
    return data


def coerce(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value
