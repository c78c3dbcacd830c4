"""System resource limits used to size database connection pools."""

import os
from dataclasses import dataclass

from common.config.env import get_env_int

DEFAULT_CPU_CORES = 2
DEFAULT_MAX_IDLE_CONNECTIONS = 3
DEFAULT_MAX_CONNECTION_LIFETIME_S = 15 * 60

# Fraction of time a connection is expected to spend waiting on I/O.
IO_WAIT_RATIO = 0.3


def pool_size_for_cores(cores: int) -> int:
    """Return the max open connections for a core count: ((cores * 2) + 1) / (1 - wait)."""
    return max(1, int(((cores * 2) + 1) / (1 - IO_WAIT_RATIO)))


@dataclass(frozen=True)
class SystemResources:
    """Pool sizing consumed verbatim by the connection manager."""

    cpu_cores: int = DEFAULT_CPU_CORES
    max_connections: int = pool_size_for_cores(DEFAULT_CPU_CORES)
    max_idle_connections: int = DEFAULT_MAX_IDLE_CONNECTIONS
    max_connection_lifetime_s: int = DEFAULT_MAX_CONNECTION_LIFETIME_S

    @property
    def max_concurrent_requests(self) -> int:
        """Upper bound on requests the server should run at once."""
        return 2 * self.max_connections

    @classmethod
    def from_env(cls) -> "SystemResources":
        """Derive limits from the host core count, allowing env overrides.

        CPU_CORES, DB_MAX_CONNECTIONS, DB_MAX_IDLE_CONNECTIONS and
        DB_MAX_CONNECTION_LIFETIME_S replace the derived values when set.
        """
        cores = get_env_int("CPU_CORES", os.cpu_count() or DEFAULT_CPU_CORES)
        if cores < 1:
            raise ValueError(f"CPU_CORES must be positive, got {cores}.")

        max_connections = get_env_int("DB_MAX_CONNECTIONS", pool_size_for_cores(cores))
        if max_connections < 1:
            raise ValueError(f"DB_MAX_CONNECTIONS must be positive, got {max_connections}.")

        max_idle = get_env_int("DB_MAX_IDLE_CONNECTIONS", DEFAULT_MAX_IDLE_CONNECTIONS)
        lifetime = get_env_int("DB_MAX_CONNECTION_LIFETIME_S", DEFAULT_MAX_CONNECTION_LIFETIME_S)

        return cls(
            cpu_cores=cores,
            max_connections=max_connections,
            max_idle_connections=max(0, min(max_idle, max_connections)),
            max_connection_lifetime_s=max(0, lifetime),
        )
