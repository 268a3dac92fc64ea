"""
Transport settings loaded from TOML or YAML files.

The lookup order is:

1. An explicit ``path`` argument.
2. The ``REMOTE_TRANSPORT_CONFIG`` environment variable.
3. ``remote-transport.toml`` in the current directory.
4. ``remote-transport.yaml`` / ``remote-transport.yml`` in the current directory.

Each file may carry ``[rest]``, ``[grpc]`` and ``[eventbus]`` sections whose
keys match the fields of the corresponding adapter config. Call
:func:`load_transport_settings` to obtain a :class:`TransportSettings`.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from .adapters.eventbus.client import EventBusTransportConfig
from .adapters.grpc.client import GrpcTransportConfig
from .adapters.rest import RestTransportConfig

ENV_CONFIG_PATH = "REMOTE_TRANSPORT_CONFIG"
DEFAULT_FILENAMES = ("remote-transport.toml", "remote-transport.yaml", "remote-transport.yml")
TRANSPORT_NAMES = ("rest", "grpc", "eventbus")


class ConfigError(RuntimeError):
    """Raised when a settings file cannot be read or one of its sections is invalid."""


@dataclass(slots=True)
class TransportSettings:
    """Parsed settings with one optional config per transport."""

    source_path: Optional[Path] = None
    data: Dict[str, Any] = field(default_factory=dict)
    rest: Optional[RestTransportConfig] = None
    grpc: Optional[GrpcTransportConfig] = None
    eventbus: Optional[EventBusTransportConfig] = None

    def for_transport(self, name: str) -> Any:
        """Return the config for ``name`` or raise :class:`ConfigError` when the section is missing."""

        if name not in TRANSPORT_NAMES:
            raise ConfigError(f"Unknown transport '{name}'. Expected one of: {', '.join(TRANSPORT_NAMES)}.")
        config = getattr(self, name)
        if config is None:
            location = self.source_path or "the loaded settings"
            raise ConfigError(f"No [{name}] section in {location}.")
        return config

    @property
    def configured_transports(self) -> tuple[str, ...]:
        return tuple(name for name in TRANSPORT_NAMES if getattr(self, name) is not None)


def _candidate_paths(path: Optional[Path | str]) -> Iterable[Path]:
    if path:
        yield Path(path).expanduser()
        return
    env_override = os.getenv(ENV_CONFIG_PATH)
    if env_override:
        yield Path(env_override).expanduser()
    cwd = Path.cwd()
    for filename in DEFAULT_FILENAMES:
        yield cwd / filename


def _load_file(path: Path) -> Dict[str, Any]:
    try:
        if path.suffix.lower() == ".toml":
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        else:
            with path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read settings file '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file '{path}' must contain a mapping at the top level.")
    return raw


def _section(raw: Mapping[str, Any], name: str) -> Optional[Mapping[str, Any]]:
    section = raw.get(name)
    if section is None:
        return None
    if not isinstance(section, Mapping):
        raise ConfigError(f"Section '{name}' must be a mapping.")
    return section


def settings_from_mapping(raw: Mapping[str, Any], source_path: Optional[Path] = None) -> TransportSettings:
    """Build :class:`TransportSettings` from already-parsed data, validating every section present."""

    factories = {
        "rest": RestTransportConfig.from_mapping,
        "grpc": GrpcTransportConfig.from_mapping,
        "eventbus": EventBusTransportConfig.from_mapping,
    }
    configs: Dict[str, Any] = {}
    for name, factory in factories.items():
        section = _section(raw, name)
        if section is None:
            continue
        try:
            config = factory(section)
            config.validate()
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid [{name}] settings: {exc}") from exc
        configs[name] = config
    return TransportSettings(source_path=source_path, data=dict(raw), **configs)


def load_transport_settings(path: Optional[Path | str] = None, strict: bool = False) -> TransportSettings:
    """
    Load transport settings from the first existing candidate file.

    Parameters
    ----------
    path:
        Explicit settings file. When given, no other location is searched.
    strict:
        When ``True`` a :class:`ConfigError` is raised if no file is found.
        Otherwise empty settings are returned.
    """

    for candidate in _candidate_paths(path):
        if candidate.is_file():
            return settings_from_mapping(_load_file(candidate), source_path=candidate)
    if strict or path:
        raise ConfigError(f"No transport settings file found (looked for {path or ', '.join(DEFAULT_FILENAMES)}).")
    return TransportSettings()
