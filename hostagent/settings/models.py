"""Typed settings model for the agent.

Settings arrive as JSON from the authoritative source and are cached on disk
in the same shape. Instead of trusting whatever keys happen to be present,
every type here decodes through ``from_dict``: known fields are type-checked
and take the documented default when absent. Keys the agent does not model
(at the top level, in ``env`` and in each network) are kept in ``extra`` so a
cached file round-trips the source's schema.

A field with the wrong JSON type raises :class:`SettingsDecodeError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from hostagent.exceptions import SettingsDecodeError


NETWORK_TYPE_DYNAMIC = "dynamic"
NETWORK_TYPE_MANUAL = "manual"
NETWORK_TYPE_VIP = "vip"


# ==============================================================================
# Decoding helpers
# ==============================================================================


def _expect_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise SettingsDecodeError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _get_str(data: Mapping[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SettingsDecodeError(f"{what}.{key} must be a string")
    return value


def _get_bool(data: Mapping[str, Any], key: str, what: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise SettingsDecodeError(f"{what}.{key} must be a boolean")
    return value


def _get_str_list(data: Mapping[str, Any], key: str, what: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise SettingsDecodeError(f"{what}.{key} must be a list of strings")
    return list(value)


# ==============================================================================
# Networks
# ==============================================================================


@dataclass(frozen=True)
class Route:
    destination: str = ""
    gateway: str = ""
    netmask: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination,
            "gateway": self.gateway,
            "netmask": self.netmask,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Route:
        data = _expect_mapping(data, "route")
        return cls(
            destination=_get_str(data, "destination", "route"),
            gateway=_get_str(data, "gateway", "route"),
            netmask=_get_str(data, "netmask", "route"),
        )


@dataclass(frozen=True)
class Network:
    """One network the VM is attached to.

    Frozen so a copy handed out by the settings service cannot be mutated
    behind the service's back; use :func:`dataclasses.replace` to derive a
    changed network.
    """

    type: str = ""
    ip: str = ""
    netmask: str = ""
    gateway: str = ""
    resolved: bool = False
    use_dhcp: bool = False
    default: list[str] = field(default_factory=list)
    dns: list[str] = field(default_factory=list)
    mac: str = ""
    preconfigured: bool = False
    routes: list[Route] = field(default_factory=list)
    alias: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = (
        "type",
        "ip",
        "netmask",
        "gateway",
        "resolved",
        "use_dhcp",
        "default",
        "dns",
        "mac",
        "preconfigured",
        "routes",
        "alias",
    )

    def is_vip(self) -> bool:
        return self.type == NETWORK_TYPE_VIP

    def is_dynamic(self) -> bool:
        return self.type == NETWORK_TYPE_DYNAMIC

    def is_dhcp(self) -> bool:
        """Whether the network's address comes from DHCP.

        A manual network without an IP/netmask pair cannot be configured
        statically, so it counts as DHCP. A resolved network stays DHCP so it
        is not mistaken for a static one on later checks.
        """
        if self.is_vip():
            return False
        if self.is_dynamic() or self.use_dhcp:
            return True
        is_static = bool(self.ip and self.netmask)
        return self.resolved or not is_static

    def has_interface_alias(self) -> bool:
        return bool(self.alias)

    def is_default_for(self, category: str) -> bool:
        return category in self.default

    def with_resolved_address(self, resolved: Network) -> Network:
        """Copy of this network with ip/netmask/gateway taken from ``resolved``.

        Everything else (DNS servers, MAC, routes, ...) stays as fetched.
        """
        return replace(
            self,
            ip=resolved.ip,
            netmask=resolved.netmask,
            gateway=resolved.gateway,
            resolved=True,
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "type": self.type,
                "ip": self.ip,
                "netmask": self.netmask,
                "gateway": self.gateway,
                "resolved": self.resolved,
                "use_dhcp": self.use_dhcp,
                "default": list(self.default),
                "dns": list(self.dns),
                "mac": self.mac,
                "preconfigured": self.preconfigured,
                "routes": [route.to_dict() for route in self.routes],
            }
        )
        if self.alias:
            data["alias"] = self.alias
        return data

    @classmethod
    def from_dict(cls, data: Any, name: str = "network") -> Network:
        data = _expect_mapping(data, name)
        routes = data.get("routes") or []
        if not isinstance(routes, list):
            raise SettingsDecodeError(f"{name}.routes must be a list")
        return cls(
            type=_get_str(data, "type", name),
            ip=_get_str(data, "ip", name),
            netmask=_get_str(data, "netmask", name),
            gateway=_get_str(data, "gateway", name),
            resolved=_get_bool(data, "resolved", name),
            use_dhcp=_get_bool(data, "use_dhcp", name),
            default=_get_str_list(data, "default", name),
            dns=_get_str_list(data, "dns", name),
            mac=_get_str(data, "mac", name),
            preconfigured=_get_bool(data, "preconfigured", name),
            routes=[Route.from_dict(route) for route in routes],
            alias=_get_str(data, "alias", name),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )


def networks_have_interface_alias(networks: Mapping[str, Network]) -> bool:
    """True when any network is addressed through an interface alias."""
    return any(network.has_interface_alias() for network in networks.values())


# ==============================================================================
# Disks
# ==============================================================================


@dataclass(frozen=True)
class DiskSettings:
    """One persistent disk attachment, keyed by its CID in the registry."""

    id: str
    device_id: str = ""
    volume_id: str = ""
    lun: str = ""
    host_device_id: str = ""
    path: str = ""
    file_system_type: str = ""
    mount_options: list[str] = field(default_factory=list)
    partitioner: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "volume_id": self.volume_id,
            "lun": self.lun,
            "host_device_id": self.host_device_id,
            "path": self.path,
            "file_system_type": self.file_system_type,
            "mount_options": list(self.mount_options),
            "partitioner": self.partitioner,
        }

    @classmethod
    def from_dict(cls, data: Any) -> DiskSettings:
        data = _expect_mapping(data, "disk settings")
        what = "disk settings"
        return cls(
            id=_get_str(data, "id", what),
            device_id=_get_str(data, "device_id", what),
            volume_id=_get_str(data, "volume_id", what),
            lun=_get_str(data, "lun", what),
            host_device_id=_get_str(data, "host_device_id", what),
            path=_get_str(data, "path", what),
            file_system_type=_get_str(data, "file_system_type", what),
            mount_options=_get_str_list(data, "mount_options", what),
            partitioner=_get_str(data, "partitioner", what),
        )


@dataclass(frozen=True)
class Disks:
    """Disk hints embedded in the fetched settings.

    ``persistent`` maps a disk CID to an inline reference: either a plain
    string (device path or volume id, from older providers) or an object
    with ``path``/``volume_id``/``id``/``lun``/``host_device_id``.
    """

    system: str = ""
    ephemeral: Any = None
    persistent: dict[str, Any] = field(default_factory=dict)
    raw_ephemeral: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "system": self.system,
            "ephemeral": self.ephemeral,
            "persistent": dict(self.persistent),
            "raw_ephemeral": list(self.raw_ephemeral),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Disks:
        data = _expect_mapping(data, "disks")
        persistent = data.get("persistent") or {}
        if not isinstance(persistent, Mapping):
            raise SettingsDecodeError("disks.persistent must be an object")
        for cid, reference in persistent.items():
            if not isinstance(reference, (str, Mapping)):
                raise SettingsDecodeError(
                    f"disks.persistent.{cid} must be a string or an object"
                )
        raw_ephemeral = data.get("raw_ephemeral") or []
        if not isinstance(raw_ephemeral, list):
            raise SettingsDecodeError("disks.raw_ephemeral must be a list")
        return cls(
            system=_get_str(data, "system", "disks"),
            ephemeral=data.get("ephemeral"),
            persistent=dict(persistent),
            raw_ephemeral=list(raw_ephemeral),
        )


@dataclass(frozen=True)
class Env:
    persistent_disk_fs: str = ""
    persistent_disk_mount_options: list[str] = field(default_factory=list)
    persistent_disk_partitioner: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = (
        "persistent_disk_fs",
        "persistent_disk_mount_options",
        "persistent_disk_partitioner",
    )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "persistent_disk_fs": self.persistent_disk_fs,
                "persistent_disk_mount_options": list(self.persistent_disk_mount_options),
                "persistent_disk_partitioner": self.persistent_disk_partitioner,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Env:
        data = _expect_mapping(data, "env")
        return cls(
            persistent_disk_fs=_get_str(data, "persistent_disk_fs", "env"),
            persistent_disk_mount_options=_get_str_list(
                data, "persistent_disk_mount_options", "env"
            ),
            persistent_disk_partitioner=_get_str(data, "persistent_disk_partitioner", "env"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )


# ==============================================================================
# Settings
# ==============================================================================


@dataclass(frozen=True)
class Settings:
    agent_id: str = ""
    blobstore: dict[str, Any] = field(default_factory=dict)
    disks: Disks = field(default_factory=Disks)
    env: Env = field(default_factory=Env)
    networks: dict[str, Network] = field(default_factory=dict)
    ntp: list[str] = field(default_factory=list)
    mbus: str = ""
    vm: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = (
        "agent_id",
        "blobstore",
        "disks",
        "env",
        "networks",
        "ntp",
        "mbus",
        "vm",
    )

    def persistent_disk_settings_from_inline(self, disk_cid: str, reference: Any) -> DiskSettings:
        """Expand an inline ``disks.persistent`` reference into DiskSettings.

        Args:
            disk_cid: CID the reference is keyed by
            reference: Plain string (used as both path and volume id) or an
                object with path/volume_id/id/lun/host_device_id

        Returns:
            DiskSettings with file system, mount options and partitioner
            taken from ``env``
        """
        values: dict[str, str] = {}
        if isinstance(reference, Mapping):
            for source_key, target_key in (
                ("path", "path"),
                ("volume_id", "volume_id"),
                ("id", "device_id"),
                ("lun", "lun"),
                ("host_device_id", "host_device_id"),
            ):
                value = reference.get(source_key)
                if value is not None:
                    values[target_key] = str(value)
        else:
            values["path"] = str(reference)
            values["volume_id"] = str(reference)

        return DiskSettings(
            id=disk_cid,
            file_system_type=self.env.persistent_disk_fs,
            mount_options=list(self.env.persistent_disk_mount_options),
            partitioner=self.env.persistent_disk_partitioner,
            **values,
        )

    def inline_persistent_disk_settings(self) -> dict[str, DiskSettings]:
        return {
            cid: self.persistent_disk_settings_from_inline(cid, reference)
            for cid, reference in self.disks.persistent.items()
        }

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "agent_id": self.agent_id,
                "blobstore": dict(self.blobstore),
                "disks": self.disks.to_dict(),
                "env": self.env.to_dict(),
                "networks": {
                    name: network.to_dict() for name, network in self.networks.items()
                },
                "ntp": list(self.ntp),
                "mbus": self.mbus,
                "vm": dict(self.vm),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Settings:
        """Decode settings JSON.

        Raises:
            SettingsDecodeError: If a known field has the wrong type
        """
        if not isinstance(data, Mapping):
            raise SettingsDecodeError("settings must be a JSON object")
        networks = _expect_mapping(data.get("networks"), "networks")
        return cls(
            agent_id=_get_str(data, "agent_id", "settings"),
            blobstore=dict(_expect_mapping(data.get("blobstore"), "blobstore")),
            disks=Disks.from_dict(data.get("disks")),
            env=Env.from_dict(data.get("env")),
            networks={
                name: Network.from_dict(network, name=f"networks.{name}")
                for name, network in networks.items()
            },
            ntp=_get_str_list(data, "ntp", "settings"),
            mbus=_get_str(data, "mbus", "settings"),
            vm=dict(_expect_mapping(data.get("vm"), "vm")),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )
