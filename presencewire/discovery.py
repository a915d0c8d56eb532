"""Endpoint discovery for a running Discord client.

Discovery is a read-only probe: it lists the locations where Discord
publishes ``discord-ipc-<n>`` and returns what is there right now. It never
connects and never raises; an empty list means nothing was found.
"""

import logging
import os
import stat
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from .constants import (
    FALLBACK_TEMP_DIR,
    IPC_SOCKET_PREFIX,
    MAX_IPC_SOCKETS,
    RUNTIME_DIR_ENV,
    SANDBOX_APP_DIRS,
    TEMP_DIR_ENVS,
    WINDOWS_PIPE_ROOT,
)


class TransportFamily(str, Enum):
    """How an endpoint is reached."""

    DOMAIN_SOCKET = "unix"
    NAMED_PIPE = "pipe"


@dataclass(frozen=True)
class Endpoint:
    """A local address believed to host a Discord IPC listener."""

    family: TransportFamily
    address: str
    ordinal: int | None = None

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "Endpoint":
        """Build an endpoint for a user-supplied socket or pipe path."""
        address = os.fspath(path)
        lowered = address.lower()
        if lowered.startswith("\\\\.\\pipe\\") or lowered.startswith("\\\\?\\pipe\\"):
            family = TransportFamily.NAMED_PIPE
        else:
            family = TransportFamily.DOMAIN_SOCKET
        return cls(family=family, address=address, ordinal=_ordinal_of(os.path.basename(address.replace("\\", "/"))))

    def __str__(self) -> str:
        return self.address


def _ordinal_of(name: str) -> int | None:
    suffix = name[len(IPC_SOCKET_PREFIX) :] if name.startswith(IPC_SOCKET_PREFIX) else ""
    return int(suffix) if suffix.isdigit() else None


def _is_windows() -> bool:
    return sys.platform == "win32"


def _is_linux() -> bool:
    return sys.platform.startswith("linux")


# ----------------------------------------------------------------------------
# Unix domain sockets
# ----------------------------------------------------------------------------


def _runtime_dir(environ: Mapping[str, str]) -> str | None:
    runtime = environ.get(RUNTIME_DIR_ENV)
    if runtime:
        return runtime
    if _is_linux() and hasattr(os, "getuid"):
        return f"/run/user/{os.getuid()}"
    return None


def candidate_directories(environ: Mapping[str, str] | None = None) -> list[str]:
    """Locations probed for domain sockets, in priority order.

    Runtime directory first, then the temp directories, then (on Linux) the
    sandboxed application directories below the runtime directory.
    """
    env = os.environ if environ is None else environ
    runtime = _runtime_dir(env)

    ordered: list[str] = []
    if runtime:
        ordered.append(runtime)
    ordered.extend(env[key] for key in TEMP_DIR_ENVS if env.get(key))
    ordered.append(FALLBACK_TEMP_DIR)
    if runtime and _is_linux():
        ordered.extend(os.path.join(runtime, app_dir) for app_dir in SANDBOX_APP_DIRS)

    unique: list[str] = []
    for directory in ordered:
        normalized = os.path.normpath(directory)
        if normalized not in unique:
            unique.append(normalized)
    return unique


def _probe_directory(directory: str, max_sockets: int) -> list[Endpoint]:
    try:
        with os.scandir(directory) as entries:
            found = {entry.name: entry for entry in entries if entry.name.startswith(IPC_SOCKET_PREFIX)}
    except OSError as exc:
        logging.debug("Skipping discovery location %s: %s", directory, exc)
        return []

    endpoints = []
    for ordinal in range(max_sockets):
        entry = found.get(f"{IPC_SOCKET_PREFIX}{ordinal}")
        if entry is None:
            continue
        try:
            is_socket = stat.S_ISSOCK(entry.stat().st_mode)
        except OSError:
            continue
        if is_socket:
            endpoints.append(Endpoint(TransportFamily.DOMAIN_SOCKET, entry.path, ordinal))
    return endpoints


# ----------------------------------------------------------------------------
# Windows named pipes
# ----------------------------------------------------------------------------


def _list_pipes() -> set[str]:
    return set(os.listdir(WINDOWS_PIPE_ROOT))


def _probe_pipes(max_sockets: int) -> list[Endpoint]:
    try:
        names = _list_pipes()
    except OSError as exc:
        logging.debug("Could not list named pipes: %s", exc)
        return []
    return [
        Endpoint(TransportFamily.NAMED_PIPE, f"{WINDOWS_PIPE_ROOT}{IPC_SOCKET_PREFIX}{ordinal}", ordinal)
        for ordinal in range(max_sockets)
        if f"{IPC_SOCKET_PREFIX}{ordinal}" in names
    ]


# ----------------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------------


def discover(max_sockets: int = MAX_IPC_SOCKETS, directories: list[str] | None = None) -> list[Endpoint]:
    """Enumerate reachable Discord IPC endpoints.

    Args:
        max_sockets: Number of ordinals (0..max_sockets-1) probed per location
        directories: Override the probed socket directories (ignored on Windows)

    Returns:
        Fresh list ordered by location priority, then ascending ordinal.
        The first entry is the default target for auto-discovery.
    """
    if _is_windows():
        endpoints = _probe_pipes(max_sockets)
    else:
        endpoints = []
        seen: set[str] = set()
        for directory in candidate_directories() if directories is None else directories:
            for endpoint in _probe_directory(directory, max_sockets):
                key = os.path.realpath(endpoint.address)
                if key not in seen:
                    seen.add(key)
                    endpoints.append(endpoint)

    logging.debug("Discovered %d Discord IPC endpoint(s): %s", len(endpoints), [e.address for e in endpoints])
    return endpoints
