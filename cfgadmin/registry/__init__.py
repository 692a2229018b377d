"""Registry — PID-keyed configurations resolved from files, resources, or system properties.

The registry provides:
- Lookup: get-or-create a configuration by PID, resolving it once
- Factory configurations: standalone instances that are never registered
- Querying: LDAP-style filters over each configuration's properties
- Write-back: updates persisted to the most specific backing source
"""

from cfgadmin.registry.configuration import Configuration
from cfgadmin.registry.configuration_registry import ConfigurationRegistry
from cfgadmin.registry.models import (
    ConfigurationSource,
    ResolutionResult,
    StorageWarning,
    UpdateResult,
    WarningKind,
)

__all__ = [
    "Configuration",
    "ConfigurationRegistry",
    "ConfigurationSource",
    "ResolutionResult",
    "StorageWarning",
    "UpdateResult",
    "WarningKind",
]
