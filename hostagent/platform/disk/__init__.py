"""Disk partitioning with bounded retries."""

from __future__ import annotations

from .partition import Partition, PartitionSectorInfo, PartitionType, Partitioner
from .retry import PartitionStrategy, Retryable, RetryableFunc
from .sfdisk import SfdiskPartitioner


__all__ = [
    "Partition",
    "PartitionSectorInfo",
    "PartitionStrategy",
    "PartitionType",
    "Partitioner",
    "Retryable",
    "RetryableFunc",
    "SfdiskPartitioner",
]
