"""Registry data models — resolution sources, storage warnings, and update results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConfigurationSource(Enum):
    """Where a configuration's properties came from, or were written to."""

    DIRECTORY = "directory"  # <config_path>/<pid>.cfg
    RESOURCE = "resource"  # Bundled <pid>.cfg, read-only
    SYSTEM_PROPERTIES = "system_properties"  # winegrower.service.<pid>.*
    NONE = "none"


class WarningKind(Enum):
    IO_ERROR = "io_error"
    READ_ONLY_RESOURCE = "read_only_resource"


@dataclass
class StorageWarning:
    """A non-fatal storage problem that was absorbed instead of raised."""

    kind: WarningKind
    message: str
    path: str = ""
    error: BaseException | None = None


@dataclass
class ResolutionResult:
    """Outcome of resolving a configuration's initial properties."""

    source: ConfigurationSource
    warning: StorageWarning | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass
class UpdateResult:
    """Outcome of ``Configuration.update``."""

    change_count: int
    source: ConfigurationSource
    persisted: bool = False
    warning: StorageWarning | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None
