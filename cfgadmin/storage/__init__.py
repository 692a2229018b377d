"""Storage — reading and writing the ``.cfg`` backing files of configurations."""

from cfgadmin.storage.properties_file import BackingStoreIOError, PropertiesFile

__all__ = ["BackingStoreIOError", "PropertiesFile"]
