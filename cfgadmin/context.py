"""Configuration-source context — where configurations are resolved from.

A ``ConfigurationContext`` is handed to the registry instead of reading
process-wide state directly. It names the three backing sources, in
priority order:

1. ``config_path`` — a directory holding ``<pid>.cfg`` files
2. ``resources`` — read-only ``<pid>.cfg`` files bundled with packages
3. ``system_properties`` — ``winegrower.service.<pid>.<key>`` entries
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Iterable, Mapping

import yaml
from dotenv import dotenv_values

from cfgadmin.storage.properties_file import BackingStoreIOError, PropertiesFile

logger = logging.getLogger(__name__)

CONFIG_PATH_PROPERTY = "winegrower.config.path"
CONFIG_PATH_ENV = "WINEGROWER_CONFIG_PATH"
SERVICE_PROPERTY_PREFIX = "winegrower.service."
CONFIG_EXTENSION = ".cfg"


class ResourceLocator:
    """Looks up bundled ``.cfg`` resources in packages, then in plain directories."""

    def __init__(self, packages: Iterable[str] = (), paths: Iterable[str | Path] = ()):
        self.packages = list(packages)
        self.paths = [Path(p) for p in paths]

    def find(self, name: str):
        """Return the first resource called ``name``, or None."""
        for package in self.packages:
            try:
                candidate = importlib_resources.files(package).joinpath(name)
            except (ModuleNotFoundError, TypeError):
                logger.debug("Resource package %s is not importable", package)
                continue
            if candidate.is_file():
                return candidate

        for root in self.paths:
            candidate = root / name
            if candidate.is_file():
                return candidate

        return None

    def exists(self, name: str) -> bool:
        return self.find(name) is not None

    def load(self, name: str, encoding: str = "utf-8") -> PropertiesFile | None:
        """Parse the resource called ``name``; None if there is none.

        Raises:
            BackingStoreIOError: if the resource exists but cannot be read or parsed.
        """
        resource = self.find(name)
        if resource is None:
            return None
        try:
            text = resource.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise BackingStoreIOError(f"Cannot read resource {name}: {e}", name) from e
        try:
            return PropertiesFile.loads(text)
        except ValueError as e:
            raise BackingStoreIOError(f"Cannot parse resource {name}: {e}", name) from e


@dataclass
class ConfigurationContext:
    """The backing sources configurations resolve from."""

    config_path: Path | None = None
    system_properties: dict[str, str] = field(default_factory=dict)
    resources: ResourceLocator = field(default_factory=ResourceLocator)
    encoding: str = "utf-8"

    def config_file(self, pid: str) -> Path | None:
        """Path of the directory-override file for ``pid``; None without a directory setting."""
        if self.config_path is None:
            return None
        return Path(self.config_path) / f"{pid}{CONFIG_EXTENSION}"

    @staticmethod
    def resource_name(pid: str) -> str:
        return f"{pid}{CONFIG_EXTENSION}"

    def service_properties(self, pid: str) -> dict[str, str]:
        """System properties under ``winegrower.service.<pid>.``, with the prefix stripped."""
        prefix = f"{SERVICE_PROPERTY_PREFIX}{pid}."
        return {
            key[len(prefix) :]: value
            for key, value in self.system_properties.items()
            if isinstance(key, str) and isinstance(value, str) and key.startswith(prefix)
        }

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv_path: str | Path | None = None,
    ) -> ConfigurationContext:
        """Build a context from process environment variables.

        ``environ`` defaults to ``os.environ`` and is copied, never mutated.
        Entries of a ``.env`` file fill in keys the environment does not set.
        The directory setting comes from ``winegrower.config.path`` or
        ``WINEGROWER_CONFIG_PATH``.
        """
        properties = dict(os.environ if environ is None else environ)
        if dotenv_path is not None:
            for key, value in dotenv_values(dotenv_path).items():
                if value is not None:
                    properties.setdefault(key, value)

        config_path = properties.get(CONFIG_PATH_PROPERTY)
        if config_path is None:
            config_path = properties.get(CONFIG_PATH_ENV)
        # A present setting counts even when empty
        return cls(
            config_path=Path(config_path) if config_path is not None else None,
            system_properties=properties,
        )


def load_context(path: str | Path) -> ConfigurationContext:
    """Load a context from a YAML settings file.

    Recognized keys: ``config_path``, ``resource_packages``,
    ``resource_paths``, ``properties`` and ``encoding``. Relative paths are
    resolved against the settings file's directory.

    Raises:
        ValueError: if the file cannot be read or is not a valid settings mapping.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ValueError(f"Cannot read settings file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in settings file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")

    properties = data.get("properties") or {}
    if not isinstance(properties, dict):
        raise ValueError(f"'properties' in {path} must be a mapping")

    base = path.parent
    config_path = data.get("config_path")

    return ConfigurationContext(
        config_path=_resolve(base, config_path) if config_path else None,
        system_properties={str(k): str(v) for k, v in properties.items()},
        resources=ResourceLocator(
            packages=data.get("resource_packages") or [],
            paths=[_resolve(base, p) for p in data.get("resource_paths") or []],
        ),
        encoding=data.get("encoding", "utf-8"),
    )


def _resolve(base: Path, value: str) -> Path:
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else base / candidate
