"""Partition descriptions handed to a :class:`Partitioner`."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence


class PartitionType(Enum):
    SWAP = "swap"
    LINUX = "linux"
    EMPTY = "empty"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PartitionSectorInfo:
    """Explicit placement of a partition, in sectors."""

    start: int
    size_in_sectors: int


@dataclass(frozen=True)
class Partition:
    """Desired end state of one partition.

    A ``size_in_bytes`` of 0 means "use the rest of the device".
    """

    size_in_bytes: int
    type: PartitionType
    sector_info: Optional[PartitionSectorInfo] = None

    def __str__(self) -> str:
        return f"[Type: {self.type.value}, SizeInBytes: {self.size_in_bytes}]"


class Partitioner(Protocol):
    def partition(self, device_path: str, partitions: Sequence[Partition]) -> None: ...

    def get_device_size_in_bytes(self, device_path: str) -> int: ...
