"""Settings reconciliation service.

Owns the agent's in-memory settings snapshot. Settings are fetched from the
authoritative source, cached on disk, and read back from the cache only when a
fetch fails. Persistent disk hints live in a second file (the disk registry)
that the agent itself maintains as disks are attached and detached.

Locking:
    ``_settings_lock`` guards the snapshot. It is never held across the
    source fetch or the cache write.
    ``_disk_settings_lock`` guards the disk registry file. It is separate so
    that attaching a disk never waits behind a slow settings fetch. When both
    are needed the disk lock is taken first.
"""

from __future__ import annotations

import json
import threading
from dataclasses import replace
from typing import Mapping

from hostagent.exceptions import (
    DiskNotFoundError,
    DiskSettingsError,
    NetworkResolutionError,
    SettingsDecodeError,
    SettingsFetchError,
    SettingsInvalidateError,
    SettingsWriteError,
)
from hostagent.logging import LoggerFactory
from hostagent.settings.models import (
    DiskSettings,
    Network,
    Settings,
    networks_have_interface_alias,
)
from hostagent.settings.sources import DefaultNetworkResolver, Source
from hostagent.system.filesystem import FileSystem


log = LoggerFactory.for_settings()


def merge_disk_settings(
    inline: Mapping[str, DiskSettings],
    registry: Mapping[str, DiskSettings],
) -> dict[str, DiskSettings]:
    """Merge inline disk hints with the disk registry.

    Registry entries override inline ones with the same CID.
    """
    merged = dict(inline)
    merged.update(registry)
    return merged


class SettingsService:
    def __init__(
        self,
        fs: FileSystem,
        settings_path: str,
        persistent_disk_settings_path: str,
        settings_source: Source,
        default_network_resolver: DefaultNetworkResolver,
    ):
        self._fs = fs
        self._settings_path = str(settings_path)
        self._persistent_disk_settings_path = str(persistent_disk_settings_path)
        self._settings_source = settings_source
        self._default_network_resolver = default_network_resolver

        self._settings = Settings()
        self._settings_lock = threading.Lock()
        self._disk_settings_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Main settings
    # ------------------------------------------------------------------

    def load_settings(self) -> None:
        """Refresh the snapshot from the source, falling back to the cache.

        On a successful fetch the snapshot is replaced and then written to
        the cache file. If that write fails the error is raised, but the
        in-memory snapshot stays updated and remains authoritative for this
        process.

        Raises:
            SettingsFetchError: The fetch failed and no usable cache exists.
                Chained from the fetch error, not from the cache error.
            SettingsWriteError: The fetched settings could not be cached
        """
        log.debug("Loading settings from fetcher")

        try:
            new_settings = self._settings_source.settings()
        except Exception as fetch_error:
            log.error(f"Failed loading settings via fetcher: {fetch_error}")

            cached_settings = self._read_cached_settings()
            if cached_settings is None:
                raise SettingsFetchError(fetch_error) from fetch_error

            with self._settings_lock:
                self._settings = cached_settings
            log.warning(f"Using cached settings from {self._settings_path}")
            return

        log.debug("Successfully received settings from fetcher")
        with self._settings_lock:
            self._settings = new_settings

        try:
            contents = json.dumps(new_settings.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as error:
            raise SettingsWriteError(error, phase="Marshalling settings json") from error

        try:
            self._fs.write_file(self._settings_path, contents, quiet=True)
        except OSError as error:
            raise SettingsWriteError(error) from error

    def get_settings(self) -> Settings:
        """Return a copy of the snapshot with DHCP networks resolved.

        Never raises. Resolution stops at the first failure; networks not
        reached by then are returned as fetched. When any network carries an
        interface alias, no resolution is attempted at all.
        """
        settings_copy = self._copy_settings()
        networks = settings_copy.networks

        if networks_have_interface_alias(networks):
            return settings_copy

        # Sorted so the networks resolved before a failure are deterministic.
        for name in sorted(networks):
            network = networks[name]
            if not network.is_dhcp() or network.resolved:
                continue
            try:
                networks[name] = self._resolve_network(network)
            except NetworkResolutionError:
                break

        return settings_copy

    def invalidate_settings(self) -> None:
        """Delete the cached settings so the next load cannot fall back to them.

        Raises:
            SettingsInvalidateError: The cache file could not be removed
        """
        try:
            self._fs.remove_all(self._settings_path)
        except OSError as error:
            raise SettingsInvalidateError(error) from error

    def public_ssh_key_for_username(self, username: str) -> str:
        return self._settings_source.public_ssh_key_for_username(username)

    # ------------------------------------------------------------------
    # Persistent disks
    # ------------------------------------------------------------------

    def get_all_persistent_disk_settings(self) -> dict[str, DiskSettings]:
        """All known persistent disks, registry entries taking precedence.

        Raises:
            DiskSettingsError: The registry file cannot be read or decoded
        """
        with self._disk_settings_lock:
            inline = self._copy_settings().inline_persistent_disk_settings()
            registry = self._read_disk_registry(context="Reading persistent disk settings")
        return merge_disk_settings(inline, registry)

    def get_persistent_disk_settings(self, disk_cid: str) -> DiskSettings:
        """Look up one persistent disk by CID.

        Raises:
            DiskNotFoundError: Neither the registry nor the settings know the CID
            DiskSettingsError: The registry file cannot be read or decoded
        """
        all_disk_settings = self.get_all_persistent_disk_settings()
        try:
            return all_disk_settings[disk_cid]
        except KeyError:
            raise DiskNotFoundError(disk_cid) from None

    def save_persistent_disk_settings(self, disk_settings: DiskSettings) -> None:
        """Add or replace a registry entry keyed by ``disk_settings.id``.

        Raises:
            DiskSettingsError: Reading, decoding, encoding or writing the
                registry failed; ``step`` names which
        """
        with self._disk_settings_lock:
            registry = self._read_disk_registry(
                context="Reading all persistent disk settings"
            )
            registry[disk_settings.id] = disk_settings
            self._write_disk_registry(registry)
        log.info(f"Saved persistent disk settings for {disk_settings.id}")

    def remove_persistent_disk_settings(self, disk_cid: str) -> None:
        """Drop a registry entry; removing an unknown CID is not an error.

        Raises:
            DiskSettingsError: Reading, decoding, encoding or writing the
                registry failed; ``step`` names which
        """
        with self._disk_settings_lock:
            registry = self._read_disk_registry(
                context="Cannot remove entry from file due to read error"
            )
            registry.pop(disk_cid, None)
            self._write_disk_registry(registry)
        log.info(f"Removed persistent disk settings for {disk_cid}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _copy_settings(self) -> Settings:
        with self._settings_lock:
            settings = self._settings
        return replace(
            settings,
            blobstore=dict(settings.blobstore),
            disks=replace(settings.disks, persistent=dict(settings.disks.persistent)),
            networks=dict(settings.networks),
            ntp=list(settings.ntp),
            vm=dict(settings.vm),
            extra=dict(settings.extra),
        )

    def _read_cached_settings(self) -> Settings | None:
        try:
            contents = self._fs.read_file(self._settings_path, quiet=True)
        except OSError as error:
            log.error(f"Failed reading settings from file {error}")
            return None

        log.debug("Successfully read settings from file")
        try:
            return Settings.from_dict(json.loads(contents))
        except (ValueError, SettingsDecodeError) as error:
            log.error(f"Failed unmarshalling settings from file {error}")
            return None

    def _resolve_network(self, network: Network) -> Network:
        # If the default network does not carry this interface's MAC, the
        # interface configuration step downstream fails, not this one.
        try:
            resolved = self._default_network_resolver.get_default_network()
        except Exception as error:
            log.error(f"Failed retrieving default network {error}")
            raise NetworkResolutionError(error) from error
        return network.with_resolved_address(resolved)

    def _read_disk_registry(self, context: str) -> dict[str, DiskSettings]:
        path = self._persistent_disk_settings_path
        if not self._fs.file_exists(path):
            return {}

        try:
            contents = self._fs.read_file(path, quiet=True)
        except OSError as error:
            raise DiskSettingsError("read", error, context=context) from error

        try:
            data = json.loads(contents)
            if not isinstance(data, dict):
                raise SettingsDecodeError("disk registry must be a JSON object")
            return {cid: DiskSettings.from_dict(value) for cid, value in data.items()}
        except (ValueError, SettingsDecodeError) as error:
            raise DiskSettingsError("decode", error, context=context) from error

    def _write_disk_registry(self, registry: Mapping[str, DiskSettings]) -> None:
        context = "Saving persistent disk settings"
        try:
            contents = json.dumps(
                {cid: disk.to_dict() for cid, disk in registry.items()}
            ).encode("utf-8")
        except (TypeError, ValueError) as error:
            raise DiskSettingsError("encode", error, context=context) from error

        try:
            self._fs.write_file(self._persistent_disk_settings_path, contents)
        except OSError as error:
            raise DiskSettingsError("write", error, context=context) from error
