"""TOML-based machine configuration.

Loads ~/.zmachine/defaults.toml (global) and zmachine.toml (project),
merges them, and resolves named machines into DriverConfig instances.

Example zmachine.toml::

    [zstack]
    endpoint = "http://zstack.local:8080"
    account_name = "admin"

    [machines.worker]
    zone = "zone-1"
    image = "ubuntu-22.04"
    instance_offering = "2c4g"
    networks = ["public-l3"]

    [machines.worker.ssh]
    user = "ubuntu"
    key_path = "~/.ssh/id_ed25519"

Keys under ``[zstack]`` are shared defaults for every machine; a machine
table overrides them. Credentials left out of both fall back to the
ZSTACK_* environment variables.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from zmachine.core.exceptions import ConfigurationError
from zmachine.zstack.config import DriverConfig, SSHCredentials

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".zmachine" / "defaults.toml"
PROJECT_CONFIG_NAME = "zmachine.toml"


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("zstack", {})
    merged.setdefault("machines", {})
    return merged


def _build_ssh(raw: RawConfig) -> SSHCredentials:
    raw = dict(raw)
    if key_path := raw.get("key_path"):
        raw["key_path"] = str(Path(key_path).expanduser())
    try:
        return SSHCredentials(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid ssh table: {e}") from e


def resolve_machine(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> DriverConfig:
    """Build the DriverConfig for ``[machines.<name>]``.

    Raises:
        KeyError: No machine with that name is configured.
        ConfigurationError: The merged table is not a valid DriverConfig.
    """
    config = load_config(project_dir=project_dir, global_path=global_path)

    machines = config["machines"]
    if name not in machines:
        raise KeyError(f"Machine '{name}' not found. Available: {', '.join(machines) or 'none'}")

    raw = _deep_merge(config["zstack"], machines[name])
    raw.setdefault("name", name)

    if "ssh" in raw:
        raw["ssh"] = _build_ssh(raw["ssh"])
    if "networks" in raw:
        raw["networks"] = tuple(raw["networks"]) if isinstance(raw["networks"], list) else raw["networks"]

    try:
        return DriverConfig(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Machine '{name}': {e}") from e
