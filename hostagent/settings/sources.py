"""Collaborators the settings service pulls from.

The service only knows these protocols; how settings travel from the
authoritative source (metadata service, config drive, ...) lives behind a
:class:`Source` implementation.
"""

from __future__ import annotations

import json
from typing import Protocol

from hostagent.exceptions import SettingsDecodeError, SettingsFetchError
from hostagent.logging import LoggerFactory
from hostagent.settings.models import Network, Settings
from hostagent.system.filesystem import FileSystem


log = LoggerFactory.for_settings()


class Source(Protocol):
    def settings(self) -> Settings:
        """Fetch the current settings from the authoritative origin."""
        ...

    def public_ssh_key_for_username(self, username: str) -> str: ...


class DefaultNetworkResolver(Protocol):
    # Ideally networks would be looked up by MAC address, but providers only
    # expose the default network.
    def get_default_network(self) -> Network:
        """Return the network the host currently routes through.

        Raises:
            NetworkResolutionError: If no default network can be determined
        """
        ...


class FileSettingsSource:
    """Settings read from a JSON document on local disk.

    Used where provisioning tooling drops the settings file next to the agent
    instead of serving it over the network. The document has the same shape
    as the agent's own settings cache. No SSH keys are carried.
    """

    def __init__(self, fs: FileSystem, path: str):
        self._fs = fs
        self._path = str(path)

    def settings(self) -> Settings:
        try:
            contents = self._fs.read_file(self._path)
        except OSError as error:
            raise SettingsFetchError(
                error, phase=f"Reading settings from {self._path}"
            ) from error

        try:
            data = json.loads(contents)
        except ValueError as error:
            raise SettingsFetchError(
                error, phase=f"Parsing settings from {self._path}"
            ) from error

        try:
            return Settings.from_dict(data)
        except SettingsDecodeError as error:
            raise SettingsFetchError(
                error, phase=f"Parsing settings from {self._path}"
            ) from error

    def public_ssh_key_for_username(self, username: str) -> str:
        log.debug(f"File settings source has no public key for {username}")
        return ""
