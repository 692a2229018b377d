"""In-memory registry of configurations keyed by PID."""

from __future__ import annotations

import logging
import threading

from cfgadmin.context import ConfigurationContext
from cfgadmin.filter.ldap_filter import compile_filter
from cfgadmin.registry.configuration import Configuration

logger = logging.getLogger(__name__)


class ConfigurationRegistry:
    """Get-or-create lookup of configurations by PID, plus filtered listing.

    Entries are created on first lookup and live as long as the registry;
    nothing is ever evicted. Factory configurations are handed to their
    creator and never registered.
    """

    def __init__(self, context: ConfigurationContext | None = None):
        self.context = context if context is not None else ConfigurationContext.from_environ()
        self._configurations: dict[str, Configuration] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._configurations)

    def __contains__(self, pid: object) -> bool:
        with self._lock:
            return pid in self._configurations

    def create_factory_configuration(self, pid: str, location: str | None = None) -> Configuration:
        """Create a standalone configuration with ``factory_pid=pid`` and no PID."""
        return Configuration(None, factory_pid=pid, location=location, context=self.context)

    def get_configuration(self, pid: str, location: str | None = None) -> Configuration:
        """Return the configuration for ``pid``, creating and resolving it on first use.

        ``location`` only seeds a newly created configuration; an existing
        entry keeps its own.
        """
        # Check and insert under one lock so a PID is resolved exactly once
        with self._lock:
            configuration = self._configurations.get(pid)
            if configuration is None:
                configuration = Configuration(pid, location=location, context=self.context)
                self._configurations[pid] = configuration
                logger.debug(
                    "Registered configuration %s (source: %s)",
                    pid,
                    configuration.resolution.source.value,
                )
        return configuration

    def list_configurations(self, filter_expression: str | None = None) -> list[Configuration]:
        """List registered configurations whose properties match the filter.

        Raises:
            InvalidFilterSyntax: if ``filter_expression`` cannot be compiled.
        """
        predicate = None if filter_expression is None else compile_filter(filter_expression)

        with self._lock:
            configurations = list(self._configurations.values())

        if predicate is None:
            return configurations
        return [c for c in configurations if predicate.match(c.get_properties())]
