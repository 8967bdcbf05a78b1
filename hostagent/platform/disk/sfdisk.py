"""MBR partitioning through sfdisk.

sfdisk regularly fails with "Device or resource busy" when it runs right after
a disk was attached, so every write goes through :class:`PartitionStrategy`.
A device that already carries the requested layout is left untouched, which
makes :meth:`SfdiskPartitioner.partition` safe to call on every boot.
"""

from __future__ import annotations

import contextlib
import re
import shutil
import subprocess
import time
from typing import Callable, Optional, Sequence

from hostagent.exceptions import PartitionError
from hostagent.logging import operation_context
from hostagent.platform.disk.partition import Partition, PartitionType
from hostagent.platform.disk.retry import PartitionStrategy, RetryableFunc
from hostagent.system.commands import run_command


MIB = 1024 * 1024
SECTOR_SIZE = 512

# Existing partitions within this many bytes of the requested size match.
SIZE_TOLERANCE_BYTES = MIB

PARTITION_TYPE_CODES = {
    PartitionType.SWAP: "82",
    PartitionType.LINUX: "83",
    PartitionType.EMPTY: "0",
}


def partition_type_code(partition_type: PartitionType) -> str:
    try:
        return PARTITION_TYPE_CODES[partition_type]
    except KeyError:
        raise ValueError(f"Unsupported partition type: {partition_type.value}") from None


def build_sfdisk_script(partitions: Sequence[Partition]) -> str:
    """Render partitions as an sfdisk input script.

    Partitions with sector info are placed exactly; others are sized in
    whole MiB (at least one) and placed by sfdisk. A size of 0 fills the rest
    of the device.

    Raises:
        ValueError: If a partition has an unsupported type
    """
    lines = ["label: dos", "unit: sectors", ""]
    for partition in partitions:
        fields = []
        if partition.sector_info is not None:
            fields.append(f"start={partition.sector_info.start}")
            fields.append(f"size={partition.sector_info.size_in_sectors}")
        elif partition.size_in_bytes > 0:
            size_mib = max(partition.size_in_bytes // MIB, 1)
            fields.append(f"size={size_mib}MiB")
        fields.append(f"type={partition_type_code(partition.type)}")
        lines.append(", ".join(fields))
    return "\n".join(lines) + "\n"


def parse_sfdisk_dump(output: str) -> list[tuple[int, str]]:
    """Extract (size_in_bytes, type_code) for each partition in ``sfdisk -d``.

    Example line:
        /dev/sdb1 : start=        2048, size=     2097152, type=82
    """
    sector_size = SECTOR_SIZE
    partitions: list[tuple[int, str]] = []
    for line in output.splitlines():
        line = line.strip()
        match = re.match(r"sector-size:\s*(\d+)", line)
        if match:
            sector_size = int(match.group(1))
            continue
        if not line.startswith("/dev/") or ":" not in line:
            continue
        size_match = re.search(r"size=\s*(\d+)", line)
        type_match = re.search(r"type=\s*([0-9A-Za-z-]+)", line)
        if not size_match or not type_match:
            continue
        partitions.append((int(size_match.group(1)), type_match.group(1).lower()))
    return [(size * sector_size, code) for size, code in partitions]


class SfdiskPartitioner:
    def __init__(
        self,
        runner: Callable[..., subprocess.CompletedProcess] = run_command,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._runner = runner
        self._sleep = sleep

    def get_device_size_in_bytes(self, device_path: str) -> int:
        """Size of the device as reported by ``sfdisk -s`` (KiB) in bytes.

        Raises:
            PartitionError: If sfdisk fails or prints something unexpected
        """
        try:
            result = self._runner(["sfdisk", "-s", device_path], check=True)
        except (subprocess.CalledProcessError, OSError) as error:
            raise PartitionError(
                device_path, error, phase="Getting device size"
            ) from error
        try:
            return int(result.stdout.strip()) * 1024
        except ValueError as error:
            raise PartitionError(
                device_path, error, phase="Converting device size"
            ) from error

    def partition(self, device_path: str, partitions: Sequence[Partition]) -> None:
        """Write ``partitions`` to the device unless it already matches.

        Raises:
            PartitionError: If a partition type is unsupported or sfdisk
                keeps failing after all retries
        """
        with operation_context("partition", device=device_path) as log:
            if self._partitions_match(device_path, partitions):
                log.info(
                    f"{device_path} already partitioned as "
                    f"{', '.join(str(p) for p in partitions)}"
                )
                return

            try:
                script = build_sfdisk_script(partitions)
            except ValueError as error:
                raise PartitionError(device_path, error) from error

            def attempt() -> tuple[bool, Optional[Exception]]:
                try:
                    result = self._runner(
                        ["sfdisk", device_path], check=False, input_text=script
                    )
                except OSError as error:
                    # sfdisk is missing or not executable; retrying cannot help
                    return False, error
                if result.returncode != 0:
                    stderr = (result.stderr or "").strip() or "no error message"
                    log.error(f"sfdisk failed on {device_path}: {stderr}")
                    return True, RuntimeError(f"Shelling out to sfdisk: {stderr}")
                return False, None

            strategy = PartitionStrategy(RetryableFunc(attempt), sleep=self._sleep, log=log)
            try:
                strategy.run()
            except (RuntimeError, OSError) as error:
                raise PartitionError(device_path, error) from error

            self._settle(device_path)

    def _partitions_match(self, device_path: str, partitions: Sequence[Partition]) -> bool:
        try:
            result = self._runner(["sfdisk", "-d", device_path], check=False, log_output=False)
        except OSError:
            return False
        if result.returncode != 0:
            return False

        existing = parse_sfdisk_dump(result.stdout or "")
        if len(existing) != len(partitions):
            return False

        for (existing_size, existing_code), wanted in zip(existing, partitions):
            if wanted.type not in PARTITION_TYPE_CODES:
                return False
            if existing_code != PARTITION_TYPE_CODES[wanted.type]:
                return False
            wanted_size = wanted.size_in_bytes
            if wanted.sector_info is not None:
                wanted_size = wanted.sector_info.size_in_sectors * SECTOR_SIZE
            if wanted_size and abs(existing_size - wanted_size) > SIZE_TOLERANCE_BYTES:
                return False
        return True

    def _settle(self, device_path: str) -> None:
        """Tell the kernel about the new table; failures here are not fatal."""
        for cmd in (
            ["partprobe", device_path],
            ["udevadm", "settle", "--timeout=10"],
        ):
            if shutil.which(cmd[0]):
                with contextlib.suppress(subprocess.CalledProcessError, OSError):
                    self._runner(cmd, log_command=False)
