"""Custom exceptions for the agent's local state subsystem.

This module defines a hierarchy of exceptions so callers can tell apart which
component failed and, for the state store, which phase of a save failed.

Exception Hierarchy:
    AgentError (base)
        ├── StateError
        │   ├── StateReadError
        │   ├── StateDecodeError
        │   ├── StateValidationError
        │   ├── StateWriteError
        │   ├── StatePermissionError
        │   ├── StateRenameError
        │   └── UUIDGenerationError
        ├── SettingsError
        │   ├── SettingsFetchError
        │   ├── SettingsDecodeError
        │   ├── SettingsWriteError
        │   ├── SettingsInvalidateError
        │   ├── DiskSettingsError
        │   ├── DiskNotFoundError
        │   └── NetworkResolutionError
        └── PartitionError

Every wrapping error renders as "<phase>: <cause>" and is raised with
``raise ... from original`` so the original exception stays reachable through
``__cause__``.

Usage:
    from hostagent.exceptions import StateRenameError

    try:
        fs.rename(temp_path, path)
    except OSError as error:
        raise StateRenameError(path, error) from error
"""

from __future__ import annotations


class AgentError(Exception):
    """Base exception for all agent state operations."""


class _WrappingError(AgentError):
    """Error that prefixes a phase description onto an underlying cause."""

    phase = "operation failed"

    def __init__(self, reason: object = "", phase: str | None = None):
        if phase is not None:
            self.phase = phase
        self.reason = str(reason)
        msg = self.phase
        if self.reason:
            msg += f": {self.reason}"
        super().__init__(msg)


# ==============================================================================
# Local state store
# ==============================================================================


class StateError(_WrappingError):
    """Base exception for versioned state file errors."""

    def __init__(self, path: str, reason: object = ""):
        self.path = path
        super().__init__(reason)


class StateReadError(StateError):
    """State file could not be read (missing, permission denied, ...)."""

    phase = "reading state file"


class StateDecodeError(StateError):
    """State file contents do not match the expected schema."""

    phase = "decoding state file"


class StateValidationError(StateError):
    """State handed to a save breaks the document schema; nothing was written."""

    phase = "validating DNS state"


class StateWriteError(StateError):
    """Writing the temporary state file failed."""

    phase = "writing the DNS state"


class StatePermissionError(StateError):
    """Applying platform permissions to the temporary state file failed."""

    phase = "setting permissions of DNS state"


class StateRenameError(StateError):
    """Renaming the temporary state file onto the real path failed."""

    phase = "renaming"


class UUIDGenerationError(StateError):
    """No unique suffix could be generated for the temporary state file."""

    phase = "generating uuid for temp file"


# ==============================================================================
# Settings reconciliation
# ==============================================================================


class SettingsError(_WrappingError):
    """Base exception for settings reconciliation errors."""


class SettingsFetchError(SettingsError):
    """The settings source could not deliver settings."""

    phase = "Invoking settings fetcher"


class SettingsDecodeError(SettingsError):
    """Settings or disk registry JSON is malformed."""

    phase = "Decoding settings"


class SettingsWriteError(SettingsError):
    """Persisting the fetched settings to disk failed."""

    phase = "Writing settings json"


class SettingsInvalidateError(SettingsError):
    """Removing the persisted settings file failed."""

    phase = "Removing settings file"


class DiskSettingsError(SettingsError):
    """A read-modify-write of the persistent disk registry failed.

    The ``step`` attribute names the failing step: ``read``, ``decode``,
    ``encode`` or ``write``.
    """

    _MESSAGES = {
        "read": "Reading persistent disk settings from file",
        "decode": "Unmarshalling persistent disk settings from file",
        "encode": "Marshalling persistent disk settings json",
        "write": "Writing persistent disk settings json",
    }

    def __init__(self, step: str, reason: object = "", context: str | None = None):
        self.step = step
        message = self._MESSAGES.get(step, step)
        if context:
            message = f"{context}: {message}"
        super().__init__(reason, phase=message)


class DiskNotFoundError(SettingsError):
    """Persistent disk is known to neither the registry nor the settings."""

    def __init__(self, disk_cid: str):
        self.disk_cid = disk_cid
        super().__init__(
            phase=f"Persistent disk with volume id '{disk_cid}' could not be found"
        )


class NetworkResolutionError(SettingsError):
    """The default network could not be determined."""

    phase = "Failed retrieving default network"


# ==============================================================================
# Disk partitioning
# ==============================================================================


class PartitionError(_WrappingError):
    """Partitioning a device failed."""

    phase = "Partitioning disk"

    def __init__(self, device_path: str, reason: object = "", phase: str | None = None):
        self.device_path = device_path
        super().__init__(reason, phase=phase)
