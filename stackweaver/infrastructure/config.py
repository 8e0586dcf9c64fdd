"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all stackweaver settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Execution engine (terraform CLI) configuration."""
    workdir: str = ".stackweaver/engine"
    binary: str = "terraform"
    timeout_seconds: float = 1800.0


@dataclass(frozen=True)
class DialConfig:
    """Instance reachability configuration."""
    timeout_seconds: float = 900.0
    poll_interval: float = 5.0
    agent_id_path: str = "/etc/stackweaver/agent.id"
    ssh_user: str = "root"
    ssh_port: int = 22


@dataclass(frozen=True)
class DatabaseConfig:
    """Host database configuration."""
    path: str = "stackweaver.db"


@dataclass(frozen=True)
class UserdataConfig:
    """Provisioning payload and connection key configuration."""
    key_secret: str = ""
    key_ttl_seconds: int = 3600
    register_url: str = ""


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry metrics export configuration."""
    endpoint: str = ""
    insecure: bool = False
    service_name: str = "stackweaver"
    export_interval_seconds: int = 5


@dataclass(frozen=True)
class StackweaverConfig:
    """Root configuration for stackweaver."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    dial: DialConfig = field(default_factory=DialConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    userdata: UserdataConfig = field(default_factory=UserdataConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"


def _env_override(data: dict, prefix: str = "STACKWEAVER") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern STACKWEAVER_SECTION_KEY.
    For example: STACKWEAVER_DIAL_TIMEOUT_SECONDS=60,
    STACKWEAVER_ENGINE_BINARY=tofu
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name == "log_level":
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Invalid config file %s: top level must be an object", path)
        return {}
    return data


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        return cls()
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    for f in dataclasses.fields(cls):
        # Convert string numbers to int/float/bool
        if f.name in filtered and isinstance(filtered[f.name], str):
            if f.type == "int":
                filtered[f.name] = int(filtered[f.name])
            elif f.type == "float":
                filtered[f.name] = float(filtered[f.name])
            elif f.type == "bool":
                filtered[f.name] = filtered[f.name].lower() in ("true", "1", "yes")

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "STACKWEAVER",
) -> StackweaverConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (STACKWEAVER_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to stackweaver.json in CWD.
        env_prefix: Environment variable prefix. Defaults to STACKWEAVER.
    """
    config_path = Path(path) if path else Path("stackweaver.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return StackweaverConfig(
        engine=_build_sub_config(EngineConfig, data.get("engine", {})),
        dial=_build_sub_config(DialConfig, data.get("dial", {})),
        database=_build_sub_config(DatabaseConfig, data.get("database", {})),
        userdata=_build_sub_config(UserdataConfig, data.get("userdata", {})),
        telemetry=_build_sub_config(TelemetryConfig, data.get("telemetry", {})),
        log_level=data.get("log_level", "WARNING"),
    )
