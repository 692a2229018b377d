"""A single configuration: resolution of its initial properties and write-back on update."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from cfgadmin.context import ConfigurationContext
from cfgadmin.registry.models import (
    ConfigurationSource,
    ResolutionResult,
    StorageWarning,
    UpdateResult,
    WarningKind,
)
from cfgadmin.storage.properties_file import BackingStoreIOError, PropertiesFile

logger = logging.getLogger(__name__)


@dataclass
class _WriteOutcome:
    source: ConfigurationSource
    persisted: bool = False
    warning: StorageWarning | None = None
    properties: dict[str, str] | None = None  # Backing-store view after the write


class Configuration:
    """Properties named by a PID, resolved once at construction.

    Resolution takes the first available source and never merges:
    the ``<pid>.cfg`` file when a configuration directory is set (a missing
    file then means empty properties), else a bundled ``<pid>.cfg``
    resource, else ``winegrower.service.<pid>.*`` system properties.

    Storage errors are never raised. They are logged and reported through
    ``resolution`` and the ``UpdateResult`` returned by ``update``, so a
    failed load or save can silently leave stale or missing data behind.
    """

    def __init__(
        self,
        pid: str | None,
        factory_pid: str | None = None,
        location: str | None = None,
        context: ConfigurationContext | None = None,
    ):
        self._pid = pid
        self._factory_pid = factory_pid
        self._location = location
        self._context = context if context is not None else ConfigurationContext.from_environ()
        self._properties: dict[str, Any] = {}
        self._change_count = 0
        self._lock = threading.Lock()
        self.resolution = self._resolve()

    def __repr__(self) -> str:
        return (
            f"Configuration(pid={self._pid!r}, factory_pid={self._factory_pid!r}, "
            f"change_count={self._change_count})"
        )

    def get_pid(self) -> str | None:
        return self._pid

    def get_factory_pid(self) -> str | None:
        return self._factory_pid

    def get_bundle_location(self) -> str | None:
        return self._location

    def set_bundle_location(self, location: str | None) -> None:
        # Does not re-resolve properties
        self._location = location

    def get_properties(self) -> dict[str, Any]:
        """Return a snapshot of the properties. Change them through ``update``."""
        with self._lock:
            return dict(self._properties)

    def get_change_count(self) -> int:
        return self._change_count

    def delete(self) -> None:
        """Deleting is not supported; the configuration stays registered."""
        logger.debug("Ignoring delete of configuration %s", self._pid)

    def update(self, properties: Mapping[str, Any] | None = None) -> UpdateResult:
        """Replace the properties and write them to the backing source.

        With ``properties``, every value is coerced to a string and the
        in-memory properties become the backing store's view after the
        write (directory file or bundled resource), or the coerced mapping
        when there is no backing source. Without arguments, the current
        properties are saved again and the in-memory state is left as is.

        The change count advances by one on every call, even when the
        write failed.
        """
        with self._lock:
            source_values = self._properties if properties is None else properties
            values = _to_strings(source_values)
            outcome = self._write_back(values)

            if properties is not None:
                self._properties.clear()
                self._properties.update(values if outcome.properties is None else outcome.properties)

            self._change_count += 1
            return UpdateResult(
                change_count=self._change_count,
                source=outcome.source,
                persisted=outcome.persisted,
                warning=outcome.warning,
            )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(self) -> ResolutionResult:
        if self._pid is None:
            return ResolutionResult(ConfigurationSource.NONE)

        context = self._context
        path = context.config_file(self._pid)
        if path is not None:
            if not path.exists():
                logger.debug("No %s in configuration directory", path.name)
                return ResolutionResult(ConfigurationSource.NONE)
            try:
                loaded = PropertiesFile.load_path(path, encoding=context.encoding)
            except BackingStoreIOError as e:
                return ResolutionResult(ConfigurationSource.DIRECTORY, self._io_warning(e))
            self._properties.update(loaded.as_dict(context.system_properties))
            logger.debug("Loaded configuration %s from %s", self._pid, path)
            return ResolutionResult(ConfigurationSource.DIRECTORY)

        name = context.resource_name(self._pid)
        if context.resources.exists(name):
            try:
                loaded = context.resources.load(name, encoding=context.encoding)
            except BackingStoreIOError as e:
                return ResolutionResult(ConfigurationSource.RESOURCE, self._io_warning(e))
            if loaded is not None:
                self._properties.update(loaded.as_dict(context.system_properties))
            logger.debug("Loaded configuration %s from resource %s", self._pid, name)
            return ResolutionResult(ConfigurationSource.RESOURCE)

        found = context.service_properties(self._pid)
        if found:
            self._properties.update(found)
            logger.debug("Loaded configuration %s from %d system properties", self._pid, len(found))
            return ResolutionResult(ConfigurationSource.SYSTEM_PROPERTIES)

        return ResolutionResult(ConfigurationSource.NONE)

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    def _write_back(self, values: dict[str, str]) -> _WriteOutcome:
        if self._pid is None:
            return _WriteOutcome(ConfigurationSource.NONE)

        context = self._context
        path = context.config_file(self._pid)
        if path is not None:
            return self._write_file(path, values)

        name = context.resource_name(self._pid)
        if context.resources.exists(name):
            return self._write_resource(name, values)

        return _WriteOutcome(ConfigurationSource.NONE)

    def _write_file(self, path: Path, values: dict[str, str]) -> _WriteOutcome:
        context = self._context
        layout = PropertiesFile()
        if path.exists():
            try:
                layout = PropertiesFile.load_path(path, encoding=context.encoding)
            except BackingStoreIOError as e:
                # Leave an unreadable file alone rather than overwrite it
                return _WriteOutcome(ConfigurationSource.DIRECTORY, warning=self._io_warning(e))

        layout.update(values, context.system_properties)
        merged = layout.as_dict(context.system_properties)
        try:
            layout.store(path, encoding=context.encoding)
        except BackingStoreIOError as e:
            return _WriteOutcome(
                ConfigurationSource.DIRECTORY, warning=self._io_warning(e), properties=merged
            )

        logger.debug("Stored configuration %s to %s", self._pid, path)
        return _WriteOutcome(ConfigurationSource.DIRECTORY, persisted=True, properties=merged)

    def _write_resource(self, name: str, values: dict[str, str]) -> _WriteOutcome:
        context = self._context
        try:
            layout = context.resources.load(name, encoding=context.encoding)
        except BackingStoreIOError as e:
            return _WriteOutcome(ConfigurationSource.RESOURCE, warning=self._io_warning(e))
        if layout is None:
            layout = PropertiesFile()

        layout.update(values, context.system_properties)
        message = f"Configuration {self._pid} is backed by read-only resource {name}; update kept in memory only"
        logger.warning(message)
        return _WriteOutcome(
            ConfigurationSource.RESOURCE,
            warning=StorageWarning(WarningKind.READ_ONLY_RESOURCE, message, path=name),
            properties=layout.as_dict(context.system_properties),
        )

    def _io_warning(self, error: BackingStoreIOError) -> StorageWarning:
        logger.warning("Storage error for configuration %s: %s", self._pid, error)
        return StorageWarning(WarningKind.IO_ERROR, str(error), path=error.path, error=error)


def _to_strings(properties: Mapping[str, Any]) -> dict[str, str]:
    """Coerce values to their string form; booleans as ``true``/``false``, None dropped."""
    result = {}
    for key, value in properties.items():
        if value is None:
            continue
        if isinstance(value, bool):
            result[str(key)] = "true" if value else "false"
        else:
            result[str(key)] = str(value)
    return result
