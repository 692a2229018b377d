"""cfgadmin — a local, file-backed configuration registry.

Configurations are named by a persistent identifier (PID) and resolved from a
``<pid>.cfg`` file in a configuration directory, a bundled resource, or
``winegrower.service.<pid>.*`` system properties, in that order.
"""

__version__ = "0.1.0"
